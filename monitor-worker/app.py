# monitor-worker/app.py
import asyncio
import logging
from typing import Optional

from fastapi import FastAPI, HTTPException, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from utils import events
from utils.bus import EventBus
from utils.settings import bus_settings, load_config
from utils.timefmt import iso_utc
from workers.errors import InvalidInput, NotFound
from workers.registry import MonitorRegistry

CFG = load_config()
logging.basicConfig(
    level=str((CFG.get("logging") or {}).get("level", "INFO")).upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger("monitor-worker")

app = FastAPI()
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

bus = EventBus(**bus_settings(CFG))
registry = MonitorRegistry.from_config(CFG, bus)


class CameraIn(BaseModel):
    name: str = ""
    url: Optional[str] = None


class StartRequest(BaseModel):
    userId: Optional[str] = None
    camera: Optional[CameraIn] = None
    fallEnabled: bool = True
    motionlessHours: float = 0


class StopRequest(BaseModel):
    monitorId: Optional[str] = None


class UpdateRequest(BaseModel):
    monitorId: Optional[str] = None
    fallEnabled: Optional[bool] = None
    motionlessHours: Optional[float] = None


class SosRequest(BaseModel):
    userId: Optional[str] = None
    cameraName: Optional[str] = None
    cameraUrl: Optional[str] = None
    reason: str = "unknown"


@app.get("/")
@app.get("/health")
def health():
    return {"ok": True, "monitors": len(registry)}


@app.post("/api/monitor/start")
def start_monitor(req: StartRequest):
    camera = req.camera.model_dump() if req.camera else None
    try:
        monitor_id = registry.start(req.userId, camera, req.fallEnabled, req.motionlessHours)
    except InvalidInput as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"ok": True, "monitorId": monitor_id}


@app.post("/api/monitor/stop")
def stop_monitor(req: StopRequest):
    try:
        registry.stop(req.monitorId or "")
    except NotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    return {"ok": True}


@app.post("/api/monitor/update")
def update_monitor(req: UpdateRequest):
    try:
        registry.update(req.monitorId or "", req.fallEnabled, req.motionlessHours)
    except NotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    except InvalidInput as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"ok": True}


@app.get("/api/monitors")
def list_monitors():
    return {"ok": True, "monitors": registry.list()}


@app.post("/api/sos")
def sos(req: SosRequest):
    logger.warning("SOS received user=%s camera=%s reason=%s", req.userId, req.cameraUrl, req.reason)
    if req.userId:
        camera = {"name": req.cameraName or "", "url": req.cameraUrl or ""}
        bus.publish(req.userId, events.SOS, events.sos(req.reason, camera, iso_utc()))
    # in production: call SMS / push / emergency API here
    return {"ok": True}


@app.websocket("/ws/{user_id}")
async def user_channel(ws: WebSocket, user_id: str):
    loop = asyncio.get_running_loop()
    q: "asyncio.Queue[dict]" = asyncio.Queue(maxsize=256)

    def forward(event, payload):
        # called from monitor threads
        loop.call_soon_threadsafe(_offer, q, {"event": event, "payload": payload})

    # subscribed before the handshake completes
    unsubscribe = bus.subscribe(user_id, forward)
    sender = None
    try:
        await ws.accept()
        logger.info("subscriber joined %s", user_id)

        async def pump():
            while True:
                await ws.send_json(await q.get())

        sender = asyncio.create_task(pump())
        while True:
            msg = await ws.receive()
            if msg["type"] == "websocket.disconnect":
                break
    except WebSocketDisconnect:
        pass
    finally:
        if sender is not None:
            sender.cancel()
        unsubscribe()
        logger.info("subscriber left %s", user_id)


def _offer(q: asyncio.Queue, msg: dict):
    if q.full():
        try:
            q.get_nowait()
        except asyncio.QueueEmpty:
            pass
    q.put_nowait(msg)


@app.on_event("shutdown")
def on_shutdown():
    registry.stop_all()
