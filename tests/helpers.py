import json

import fakeredis

from backend import RedisGateway
from exceptions import PersistenceError


def make_gateway() -> RedisGateway:
    return RedisGateway(fakeredis.FakeRedis(server=fakeredis.FakeServer(), decode_responses=True))


class FailingGateway(RedisGateway):
    """Gateway whose message writes always fail."""

    def insert_message(self, message):
        raise PersistenceError("insert_message", ConnectionError("store unavailable"))


class RecordingSocket:
    def __init__(self):
        self.frames = []

    async def send_text(self, text: str):
        self.frames.append(json.loads(text))

    def of_type(self, frame_type: str):
        return [f for f in self.frames if f.get("type") == frame_type]
