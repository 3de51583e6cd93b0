import asyncio
import unittest

from fastapi import HTTPException

from chat_fixtures import FlakyMessageRepository, StepClock, YieldingMessageRepository, at, make_db, seed_user

from models.enums import ChangeKind, ChangeOp, SendStatus, WriteTarget
from models.message_model import MessageCreate, SendOutcome
from repos.message_repo import MessageRepository
from repos.recent_message_repo import RecentMessageRepository
from repos.user_repo import UserRepository
from services.change_feed import ChangeFeed
from services.message_service import MessageService


class MessageServiceTestCase(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self.db = make_db()
        self.user_repo = UserRepository(self.db)
        self.message_repo = MessageRepository(self.db)
        self.recent_repo = RecentMessageRepository(self.db)
        self.feed = ChangeFeed()
        self.u1 = await seed_user(self.user_repo, "u1")
        self.u2 = await seed_user(self.user_repo, "u2")
        self.u3 = await seed_user(self.user_repo, "u3")
        self.service = self.make_service(self.message_repo, clock=StepClock(100))

    def make_service(self, message_repo, clock=None):
        return MessageService(
            message_repo, self.recent_repo, self.user_repo, self.feed,
            clock=clock or StepClock(100)
        )

    async def send(self, sender, to_id, text, message_id=None, service=None):
        service = service or self.service
        return await service.send_message(sender, MessageCreate(to_id=to_id, text=text, message_id=message_id))

    async def raw_messages(self, owner_id, peer_id):
        return await self.db.messages.find({"ownerId": owner_id, "peerId": peer_id}).to_list(length=None)


class SendPipelineTests(MessageServiceTestCase):
    async def test_hi_from_u1_to_u2_lands_in_all_four_places(self):
        self.service = self.make_service(self.message_repo, clock=lambda: at(100))

        outcome = await self.send(self.u1, "u2", "hi")

        self.assertEqual(outcome.status, SendStatus.DELIVERED)
        self.assertIsNone(outcome.error)
        self.assertEqual(
            [w.target for w in outcome.writes],
            [WriteTarget.SENDER_MESSAGE, WriteTarget.SENDER_RECENT,
             WriteTarget.RECIPIENT_MESSAGE, WriteTarget.RECIPIENT_RECENT]
        )
        self.assertEqual(outcome.writes[2].path, f"messages/u2/u1/{outcome.message_id}")

        for owner, peer in (("u1", "u2"), ("u2", "u1")):
            messages = await self.message_repo.get_messages(owner, peer)
            self.assertEqual(len(messages), 1)
            self.assertEqual(
                (messages[0].from_id, messages[0].to_id, messages[0].text, messages[0].timestamp),
                ("u1", "u2", "hi", at(100))
            )

        sender_row = await self.recent_repo.get_entry("u1", "u2")
        recipient_row = await self.recent_repo.get_entry("u2", "u1")
        for row in (sender_row, recipient_row):
            self.assertEqual((row.text, row.from_id, row.to_id, row.status), ("hi", "u1", "u2", True))
            self.assertEqual(row.timestamp, at(100))

        # each row shows the other participant
        self.assertEqual(sender_row.email, self.u2.email)
        self.assertEqual(sender_row.profile_image_url, self.u2.profile_image_url)
        self.assertEqual(recipient_row.email, self.u1.email)

    async def test_send_publishes_changes_for_both_participants(self):
        sender_log = self.feed.subscribe(ChangeKind.MESSAGE, "u1", "u2")
        recipient_index = self.feed.subscribe(ChangeKind.RECENT, "u2")
        sender_log.release()
        recipient_index.release()

        outcome = await self.send(self.u1, "u2", "hello")

        message_event = await asyncio.wait_for(sender_log.__anext__(), timeout=1)
        self.assertEqual(message_event.op, ChangeOp.INSERT)
        self.assertEqual(message_event.document["messageId"], outcome.message_id)

        recent_event = await asyncio.wait_for(recipient_index.__anext__(), timeout=1)
        self.assertEqual(recent_event.op, ChangeOp.INSERT)
        self.assertEqual(recent_event.doc_id, "u1")
        self.assertEqual(recent_event.document["text"], "hello")

    async def test_recent_row_is_overwritten_by_latest_send(self):
        await self.send(self.u1, "u2", "first")
        await self.send(self.u2, "u1", "second")
        await self.send(self.u1, "u3", "other conversation")

        rows = await self.service.get_recent_messages("u1")
        self.assertEqual([r.id for r in rows], ["u3", "u2"])
        self.assertEqual(rows[1].text, "second")
        self.assertEqual((rows[1].from_id, rows[1].to_id), ("u2", "u1"))

        await self.send(self.u2, "u1", "third")
        rows = await self.service.get_recent_messages("u1")
        self.assertEqual([r.id for r in rows], ["u2", "u3"])
        self.assertEqual(rows[0].text, "third")
        self.assertEqual(await self.db.recent_messages.count_documents({"ownerId": "u1"}), 2)

    async def test_messages_are_returned_oldest_first(self):
        for text in ("one", "two", "three"):
            await self.send(self.u1, "u2", text)
        await self.send(self.u2, "u1", "four")

        messages = await self.service.get_messages("u2", "u1")
        self.assertEqual([m.text for m in messages], ["one", "two", "three", "four"])

        latest_two = await self.service.get_messages("u2", "u1", limit=2)
        self.assertEqual([m.text for m in latest_two], ["three", "four"])

    async def test_concurrent_sends_in_both_directions_both_land(self):
        service = self.make_service(self.message_repo, clock=lambda: at(500))

        a_to_b, b_to_a = await asyncio.gather(
            self.send(self.u1, "u2", "from a", service=service),
            self.send(self.u2, "u1", "from b", service=service),
        )

        self.assertEqual(a_to_b.status, SendStatus.DELIVERED)
        self.assertEqual(b_to_a.status, SendStatus.DELIVERED)
        for owner, peer in (("u1", "u2"), ("u2", "u1")):
            texts = sorted(m.text for m in await self.message_repo.get_messages(owner, peer))
            self.assertEqual(texts, ["from a", "from b"])


class SendFailureTests(MessageServiceTestCase):
    async def test_recipient_copy_failure_is_reported_as_partial(self):
        flaky = FlakyMessageRepository(self.db, fail_owners={"u2"})
        service = self.make_service(flaky)

        outcome = await self.send(self.u1, "u2", "hi", service=service)

        self.assertEqual(outcome.status, SendStatus.PARTIAL)
        self.assertEqual([w.ok for w in outcome.writes], [True, True, False, True])
        self.assertIn("recipient_message", outcome.error)
        self.assertIn("network is unreachable", outcome.error)
        self.assertEqual(len(await self.raw_messages("u1", "u2")), 1)
        self.assertEqual(len(await self.raw_messages("u2", "u1")), 0)

    async def test_resend_with_same_message_id_repairs_partial_send(self):
        flaky = FlakyMessageRepository(self.db, fail_owners={"u2"})
        service = self.make_service(flaky, clock=StepClock(100))

        first = await self.send(self.u1, "u2", "hi", message_id="msg-1", service=service)
        self.assertEqual(first.status, SendStatus.PARTIAL)

        flaky.fail_owners.clear()
        repaired = await self.send(self.u1, "u2", "hi", message_id="msg-1", service=service)

        self.assertEqual(repaired.status, SendStatus.DELIVERED)
        self.assertEqual(repaired.timestamp, first.timestamp)
        sender_copies = await self.raw_messages("u1", "u2")
        recipient_copies = await self.raw_messages("u2", "u1")
        self.assertEqual(len(sender_copies), 1)
        self.assertEqual(len(recipient_copies), 1)
        self.assertEqual(recipient_copies[0]["messageId"], "msg-1")

    async def test_replay_does_not_duplicate_or_publish_again(self):
        await self.send(self.u1, "u2", "hi", message_id="msg-1")
        subscription = self.feed.subscribe(ChangeKind.MESSAGE, "u2", "u1")
        subscription.release()

        replay = await self.send(self.u1, "u2", "hi", message_id="msg-1")

        self.assertEqual(replay.status, SendStatus.DELIVERED)
        self.assertEqual(len(await self.raw_messages("u2", "u1")), 1)
        self.assertTrue(subscription._queue.empty())

    async def test_replay_does_not_roll_back_newer_recent_row(self):
        await self.send(self.u1, "u2", "old", message_id="msg-old")
        await self.send(self.u1, "u2", "new", message_id="msg-new")

        await self.send(self.u1, "u2", "old", message_id="msg-old")

        row = await self.recent_repo.get_entry("u2", "u1")
        self.assertEqual(row.text, "new")

    async def test_reusing_message_id_for_other_text_conflicts(self):
        await self.send(self.u1, "u2", "hi", message_id="msg-1")

        with self.assertRaises(HTTPException) as ctx:
            await self.send(self.u1, "u2", "something else", message_id="msg-1")
        self.assertEqual(ctx.exception.status_code, 409)

    async def test_sender_copy_failure_writes_nothing(self):
        flaky = FlakyMessageRepository(self.db, fail_owners={"u1"})
        service = self.make_service(flaky)

        outcome = await self.send(self.u1, "u2", "hi", service=service)

        self.assertEqual(outcome.status, SendStatus.FAILED)
        self.assertFalse(any(w.ok for w in outcome.writes))
        self.assertEqual(len(outcome.writes), 4)
        self.assertIsNone(await self.recent_repo.get_entry("u1", "u2"))
        self.assertIsNone(await self.recent_repo.get_entry("u2", "u1"))
        self.assertEqual(len(await self.raw_messages("u2", "u1")), 0)


class SendValidationTests(MessageServiceTestCase):
    async def assert_rejected(self, status_code, sender, message):
        with self.assertRaises(HTTPException) as ctx:
            await self.service.send_message(sender, message)
        self.assertEqual(ctx.exception.status_code, status_code)

    async def test_empty_text_is_rejected(self):
        await self.assert_rejected(400, self.u1, MessageCreate(to_id="u2", text="   "))

    async def test_sending_to_yourself_is_rejected(self):
        await self.assert_rejected(400, self.u1, MessageCreate(to_id="u1", text="hi"))

    async def test_unknown_recipient_is_rejected(self):
        await self.assert_rejected(404, self.u1, MessageCreate(to_id="nobody", text="hi"))

    async def test_from_id_must_match_sender(self):
        await self.assert_rejected(403, self.u1, MessageCreate(to_id="u2", text="hi", from_id="u3"))

    async def test_nothing_written_on_rejection(self):
        await self.assert_rejected(404, self.u1, MessageCreate(to_id="nobody", text="hi"))
        self.assertEqual(await self.db.messages.count_documents({}), 0)
        self.assertEqual(self.feed.last_seq, 0)


class ConcurrentRetryTests(MessageServiceTestCase):
    async def asyncSetUp(self):
        await super().asyncSetUp()
        self.service = self.make_service(YieldingMessageRepository(self.db), clock=StepClock(100))

    async def send_twice(self, first_text, second_text):
        return await asyncio.gather(
            self.send(self.u1, "u2", first_text, message_id="m1"),
            self.send(self.u1, "u2", second_text, message_id="m1"),
            return_exceptions=True,
        )

    async def assert_rows_match(self, winner):
        for owner, peer in (("u1", "u2"), ("u2", "u1")):
            copies = await self.raw_messages(owner, peer)
            self.assertEqual([c["text"] for c in copies], [winner.text])
            row = await self.recent_repo.get_entry(owner, peer)
            self.assertEqual((row.text, row.message_id, row.timestamp), (winner.text, "m1", winner.timestamp))

    async def test_same_id_with_other_text_conflicts_even_when_in_flight_together(self):
        results = await self.send_twice("first", "second")

        outcomes = [r for r in results if isinstance(r, SendOutcome)]
        conflicts = [r for r in results if isinstance(r, HTTPException)]
        self.assertEqual(len(outcomes), 1)
        self.assertEqual([c.status_code for c in conflicts], [409])
        await self.assert_rows_match(outcomes[0])

    async def test_in_flight_retries_share_one_timestamp(self):
        first, second = await self.send_twice("hi", "hi")

        self.assertEqual(first.status, SendStatus.DELIVERED)
        self.assertEqual(second.status, SendStatus.DELIVERED)
        self.assertEqual(first.timestamp, second.timestamp)
        await self.assert_rows_match(first)
