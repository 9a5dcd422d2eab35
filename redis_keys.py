REDIS_MESSAGE_SEQ_KEY = "chat:message:seq" # global counter - message ids
REDIS_MESSAGE_KEY = "chat:message:{message_id}" # message id - JSON record
REDIS_ROOM_MESSAGES_KEY = "chat:room:{room}:messages" # room name - zset of message ids scored by created_at
REDIS_ROOMS_KEY = "chat:rooms" # set of room names with history

REDIS_TOGGLE_PAIR_KEY = "toggle:{kind}:pair:{actor_id}:{target_id}" # (actor, target) - toggle id, written with NX
REDIS_TOGGLE_ROW_KEY = "toggle:{kind}:row:{toggle_id}" # toggle id - JSON record
REDIS_TOGGLE_TARGET_KEY = "toggle:{kind}:target:{target_id}" # target id - set of toggle ids

# Room, kind, actor and target ids are percent-encoded before formatting
# so a ":" inside an id cannot shift the key segments.

# Message ids are zero padded in the room index so that members with equal
# scores sort in insertion order.
MESSAGE_ID_WIDTH = 20

# **Example `chat:message:{id}` record**
# - `id` = sequence number as a string
# - `room`, `sender`, `content`
# - `anonymous` = true when no sender identity was supplied
# - `created_at` = ISO timestamp (UTC)
