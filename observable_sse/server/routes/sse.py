"""
MODULE OVERVIEW:
The demo SSE endpoints.

WHAT IS HAPPENING HERE:
  /event          named `foo` events with a JSON body, popped from the event queue
  /text           unnamed text messages, popped from the text queue
  /fixture/event  `{"cash": 1000}` on a slow timer
  /fixture/text   `1000` on a slow timer
sse-starlette keeps the response open and sends a comment ping so proxies do not
time the stream out.
"""
from fastapi import APIRouter, Query
from sse_starlette.sse import EventSourceResponse

from observable_sse.server.connection_manager import manager
from observable_sse.server.route_utils import extract_client_id, tracked
from observable_sse.server.streams import event_stream, fixture_stream, text_stream
from observable_sse.shared.config import settings

router = APIRouter()

SSE_HEADERS = {"Cache-Control": "no-cache"}

def _response(generator) -> EventSourceResponse:
    return EventSourceResponse(generator, headers=SSE_HEADERS, ping=settings.SSE_PING_INTERVAL_S)

# Event-driven communication
@router.get("/event")
async def event_endpoint(client_id: str | None = Query(None)):
    cid = await extract_client_id(client_id)
    return _response(tracked(manager, "event", cid, event_stream(manager, settings.SSE_EVENT_INTERVAL_S)))

# Pure text communication
@router.get("/text")
async def text_endpoint(client_id: str | None = Query(None)):
    cid = await extract_client_id(client_id)
    return _response(tracked(manager, "text", cid, text_stream(manager, settings.SSE_TEXT_INTERVAL_S)))

@router.get("/fixture/event")
async def fixture_event_endpoint():
    return _response(fixture_stream({"cash": 1000}, settings.SSE_FIXTURE_INTERVAL_S))

@router.get("/fixture/text")
async def fixture_text_endpoint():
    return _response(fixture_stream("1000", settings.SSE_FIXTURE_INTERVAL_S))
