"""Manual test dispatch.

Learn: GET /send-test pushes a fixed test notification to every unique
subscriber and reports how many deliveries succeeded. Partial failure is
still a 200; only an unreadable subscriber list is an error (mapped to
503 by the SubscriberReadError handler in main.py).
"""

from fastapi import APIRouter, Depends
from fastapi.responses import PlainTextResponse

from gamepush.api.deps import get_dispatcher
from gamepush.dispatcher import NotificationDispatcher

router = APIRouter()


@router.get("/send-test", response_class=PlainTextResponse)
async def send_test(dispatcher: NotificationDispatcher = Depends(get_dispatcher)):
    report = await dispatcher.send_test()
    if report.targeted == 0:
        return "No subscribers found."
    return f"Notifications sent: {report.sent}, failed: {report.failed}"
