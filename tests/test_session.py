import asyncio
import json
import unittest

from broadcaster import Connection, MessageBroadcaster
from exceptions import PersistenceError, ValidationError
from registry import RoomRegistry
from session import ChatSession
from tests.helpers import FailingGateway, RecordingSocket, make_gateway


class SessionTestCase(unittest.IsolatedAsyncioTestCase):
    gateway_factory = staticmethod(make_gateway)

    async def asyncSetUp(self):
        self.gateway = self.gateway_factory()
        self.registry = RoomRegistry()
        self.broadcaster = MessageBroadcaster(self.registry)
        self.sessions = []

    async def open_session(self, connection_id, display_name=None):
        socket = RecordingSocket()
        connection = Connection(connection_id, socket.send_text)
        session = ChatSession(connection, self.registry, self.broadcaster, self.gateway, display_name=display_name)
        await session.open()
        self.sessions.append(session)
        return session, socket

    async def close_all(self):
        for session in self.sessions:
            await session.close()


class TestChatSession(SessionTestCase):
    async def test_message_reaches_all_members_once(self):
        (a, sock_a), (b, sock_b), (c, sock_c) = [await self.open_session(n) for n in ("A", "B", "C")]
        for session in (a, b, c):
            session.on_join("general")

        await a.on_chat_message("general", "hi", sender="A")
        await self.close_all()

        for sock in (sock_a, sock_b, sock_c):
            frames = sock.of_type("chat_message")
            self.assertEqual(len(frames), 1)
            self.assertEqual(frames[0]["room"], "general")
            self.assertEqual(frames[0]["content"], "hi")
            self.assertEqual(frames[0]["sender"], "A")
            self.assertFalse(frames[0]["anonymous"])

    async def test_message_is_persisted_with_id(self):
        session, _ = await self.open_session("A")
        message = await session.on_chat_message("general", "hello", sender="alice")
        await self.close_all()

        history = self.gateway.query_messages("general")
        self.assertEqual(len(history), 1)
        self.assertEqual(history[0].id, message.id)
        self.assertEqual(history[0].sender, "alice")

    async def test_join_twice_keeps_one_membership(self):
        session, sock = await self.open_session("A")
        self.assertTrue(session.on_join("general"))
        self.assertFalse(session.on_join("general"))
        self.assertEqual(self.registry.members_of("general"), {"A"})
        await self.close_all()
        self.assertEqual([f["online_count"] for f in sock.of_type("joined")], [1, 1])

    async def test_sender_fallbacks(self):
        named, _ = await self.open_session("A", display_name="bob")
        anon, _ = await self.open_session("B")

        from_display_name = await named.on_chat_message("general", "one")
        explicit = await anon.on_chat_message("general", "two", sender="carol")
        anonymous = await anon.on_chat_message("general", "three")
        await self.close_all()

        self.assertEqual((from_display_name.sender, from_display_name.anonymous), ("bob", False))
        self.assertEqual((explicit.sender, explicit.anonymous), ("carol", False))
        self.assertEqual((anonymous.sender, anonymous.anonymous), ("anonymous", True))
        stored = self.gateway.query_messages("general")
        self.assertEqual([m.anonymous for m in stored], [False, False, True])

    async def test_validation(self):
        session, _ = await self.open_session("A")
        with self.assertRaises(ValidationError):
            session.on_join("   ")
        with self.assertRaises(ValidationError):
            session.on_join(None)
        with self.assertRaises(ValidationError):
            await session.on_chat_message("general", "  ")
        with self.assertRaises(ValidationError):
            await session.on_chat_message("", "hi")
        await self.close_all()
        self.assertEqual(self.gateway.query_messages("general"), [])

    async def test_disconnect_cleans_up_memberships(self):
        a, sock_a = await self.open_session("A")
        b, _ = await self.open_session("B")
        a.on_join("general")
        a.on_join("random")
        b.on_join("general")

        a.on_disconnect()
        a.on_disconnect()
        self.assertEqual(self.registry.members_of("general"), {"B"})
        self.assertEqual(self.registry.members_of("random"), set())

        await b.on_chat_message("general", "after", sender="B")
        await self.close_all()
        self.assertEqual(sock_a.of_type("chat_message"), [])

    async def test_join_after_disconnect_is_ignored(self):
        session, _ = await self.open_session("A")
        session.on_disconnect()
        self.assertFalse(session.on_join("general"))
        self.assertEqual(self.registry.members_of("general"), set())
        await self.close_all()

    async def test_frames_are_processed_in_order(self):
        a, sock_a = await self.open_session("A")
        await a.submit(json.dumps({"type": "join", "room": "general"}))
        for i in range(5):
            await a.submit(json.dumps({"type": "chat_message", "room": "general", "content": f"m{i}", "sender": "A"}))
        await a.close()

        self.assertEqual([f["content"] for f in sock_a.of_type("chat_message")], [f"m{i}" for i in range(5)])
        self.assertEqual([m.content for m in self.gateway.query_messages("general")], [f"m{i}" for i in range(5)])

    async def test_full_inbox_makes_reader_wait(self):
        socket = RecordingSocket()
        session = ChatSession(
            Connection("A", socket.send_text), self.registry, self.broadcaster, self.gateway, max_inbox=1
        )
        self.sessions.append(session)
        frame = json.dumps({"type": "chat_message", "room": "general", "content": "m", "sender": "A"})

        # no worker yet, so the second frame has nowhere to go
        await session.submit(frame)
        pending = asyncio.create_task(session.submit(frame))
        await asyncio.sleep(0)
        self.assertFalse(pending.done())

        await session.open()
        await pending
        await self.close_all()
        self.assertEqual(len(self.gateway.query_messages("general")), 2)

    async def test_small_inbox_keeps_every_frame_in_order(self):
        socket = RecordingSocket()
        session = ChatSession(
            Connection("A", socket.send_text), self.registry, self.broadcaster, self.gateway, max_inbox=2
        )
        self.sessions.append(session)
        await session.open()
        for i in range(10):
            await session.submit(json.dumps({"type": "chat_message", "room": "general", "content": f"m{i}"}))
        await self.close_all()

        self.assertEqual([m.content for m in self.gateway.query_messages("general")], [f"m{i}" for i in range(10)])

    async def test_queued_message_survives_disconnect(self):
        a, _ = await self.open_session("A")
        b, sock_b = await self.open_session("B")
        b.on_join("general")

        await a.submit(json.dumps({"type": "chat_message", "room": "general", "message": "bye", "sender": "A"}))
        await a.close()
        await b.close()

        self.assertEqual([m.content for m in self.gateway.query_messages("general")], ["bye"])
        self.assertEqual([f["content"] for f in sock_b.of_type("chat_message")], ["bye"])

    async def test_bad_frames_report_to_sender_only(self):
        a, sock_a = await self.open_session("A")
        b, sock_b = await self.open_session("B")
        a.on_join("general")
        b.on_join("general")

        await a.submit("not json")
        await a.submit(json.dumps({"type": "dance"}))
        await a.submit(json.dumps({"type": "chat_message", "room": "general"}))
        await self.close_all()

        errors = sock_a.of_type("error")
        self.assertEqual(len(errors), 3)
        self.assertTrue(all(e["code"] == "validation_error" for e in errors))
        self.assertEqual(sock_b.of_type("error"), [])
        self.assertEqual(sock_b.of_type("chat_message"), [])

    async def test_concurrent_senders_share_one_order(self):
        sessions = [await self.open_session(n) for n in ("A", "B", "C")]
        for session, _ in sessions:
            session.on_join("general")

        await asyncio.gather(*[
            session.on_chat_message("general", f"{session.connection_id}{i}", sender=session.connection_id)
            for i in range(3)
            for session, _ in sessions
        ])
        await self.close_all()

        persisted = [m.content for m in self.gateway.query_messages("general")]
        for _, sock in sessions:
            self.assertEqual([f["content"] for f in sock.of_type("chat_message")], persisted)


class TestPersistBeforeBroadcast(SessionTestCase):
    gateway_factory = staticmethod(lambda: FailingGateway(make_gateway().redis_client))

    async def test_failed_write_is_not_broadcast(self):
        a, sock_a = await self.open_session("A")
        b, sock_b = await self.open_session("B")
        a.on_join("general")
        b.on_join("general")

        with self.assertRaises(PersistenceError):
            await a.on_chat_message("general", "lost", sender="A")
        await self.close_all()

        self.assertEqual(sock_a.of_type("chat_message"), [])
        self.assertEqual(sock_b.of_type("chat_message"), [])
        self.assertEqual(self.gateway.query_messages("general"), [])

    async def test_failure_is_reported_to_sender_only(self):
        a, sock_a = await self.open_session("A")
        b, sock_b = await self.open_session("B")
        a.on_join("general")
        b.on_join("general")

        await a.submit(json.dumps({"type": "chat_message", "room": "general", "content": "lost"}))
        await self.close_all()

        self.assertEqual([e["code"] for e in sock_a.of_type("error")], ["persistence_error"])
        self.assertEqual(sock_b.of_type("error"), [])


if __name__ == "__main__":
    unittest.main()
