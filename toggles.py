from backend import RedisGateway
from constants import LIKE_KIND
from exceptions import ValidationError
from logging_config import get_logger
from schemas.toggles import ToggleState

logger = get_logger(__name__)


class ToggleCoordinator:
    """Flips an existence-only (actor, target) relationship such as a like.

    The row is the only record of the state: present means active. Counts are
    read from the rows on every call.
    """

    def __init__(self, gateway: RedisGateway, kind: str = LIKE_KIND):
        self.gateway = gateway
        self.kind = kind

    def toggle(self, actor_id: str, target_id: str) -> ToggleState:
        actor_id, target_id = self._validate(actor_id, target_id)

        existing = self.gateway.find_toggle(self.kind, actor_id, target_id)
        if existing is not None:
            if not self.gateway.delete_toggle(self.kind, existing.id):
                # a concurrent toggle already removed it
                logger.debug(f"{self.kind} {existing.id} was already deleted")
            logger.info(f"{actor_id} removed {self.kind} on {target_id}")
            return ToggleState(actor_id=actor_id, target_id=target_id, active=False)

        if self.gateway.insert_toggle(self.kind, actor_id, target_id) is None:
            # a concurrent toggle inserted first; the pair is active either way
            logger.debug(f"{self.kind} for ({actor_id}, {target_id}) inserted concurrently")
        logger.info(f"{actor_id} added {self.kind} on {target_id}")
        return ToggleState(actor_id=actor_id, target_id=target_id, active=True)

    def is_active(self, actor_id: str, target_id: str) -> bool:
        actor_id, target_id = self._validate(actor_id, target_id)
        return self.gateway.find_toggle(self.kind, actor_id, target_id) is not None

    def count_active(self, target_id: str) -> int:
        if not target_id or not str(target_id).strip():
            raise ValidationError("Target id is required")
        return self.gateway.count_toggles(self.kind, str(target_id).strip())

    def _validate(self, actor_id, target_id):
        if not actor_id or not str(actor_id).strip():
            raise ValidationError("Actor id is required")
        if not target_id or not str(target_id).strip():
            raise ValidationError("Target id is required")
        return str(actor_id).strip(), str(target_id).strip()
