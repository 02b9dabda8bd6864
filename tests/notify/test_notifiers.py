import json
import unittest
from datetime import datetime, timezone

import httpx

from trial_funnel.models import RequestStatus, TrialRequest
from trial_funnel.notify import notify_trial_assigned
from trial_funnel.notify.log import LogNotifier
from trial_funnel.notify.webhook import WebhookNotifier

ASSIGNED = TrialRequest(
    id=7,
    status=RequestStatus.TRIAL_ASSIGNED,
    child_name="Mila",
    scheduled_date=datetime(2025, 6, 10, 17, 30, tzinfo=timezone.utc),
)


class NotifierTests(unittest.IsolatedAsyncioTestCase):
    async def test_log_notifier_records_request(self):
        notifier = LogNotifier()

        with self.assertLogs("trial_funnel.notify.log", level="INFO") as logs:
            delivered = await notify_trial_assigned(notifier, ASSIGNED)

        self.assertTrue(delivered)
        self.assertEqual(notifier.sent, [7])
        self.assertIn("10.06.2025 17:30", logs.output[0])

    async def test_webhook_posts_event(self):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(202)

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            notifier = WebhookNotifier("http://notify.test/events", client=client)
            delivered = await notify_trial_assigned(notifier, ASSIGNED)

        self.assertTrue(delivered)
        body = json.loads(seen[0].content)
        self.assertEqual(body["event"], "trial_assigned")
        self.assertEqual(body["request"]["id"], 7)
        self.assertEqual(body["request"]["status"], "TRIAL_ASSIGNED")
        self.assertEqual(body["request"]["scheduledDate"], "2025-06-10T17:30:00+00:00")

    async def test_webhook_failure_is_swallowed(self):
        transport = httpx.MockTransport(lambda request: httpx.Response(500))
        async with httpx.AsyncClient(transport=transport) as client:
            notifier = WebhookNotifier("http://notify.test/events", client=client)
            with self.assertLogs("trial_funnel.notify", level="ERROR"):
                delivered = await notify_trial_assigned(notifier, ASSIGNED)

        self.assertFalse(delivered)

    async def test_missing_notifier_is_skipped(self):
        self.assertFalse(await notify_trial_assigned(None, ASSIGNED))
        self.assertFalse(await notify_trial_assigned(WebhookNotifier(""), ASSIGNED))


if __name__ == "__main__":
    unittest.main()
