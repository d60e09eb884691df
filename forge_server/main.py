"""Roblox Asset Forge FastAPI server."""

import json
import logging
import re
import time
from urllib.parse import quote

from fastapi import FastAPI, HTTPException, WebSocket, WebSocketDisconnect
from fastapi.responses import Response
from pydantic import ValidationError

import rbxmx

from forge_server.models import (
    ChatMessage,
    ChatRequest,
    ChatResponse,
    HealthResponse,
    ImportRequest,
    ImportResponse,
    LoadProjectRequest,
    ProjectState,
    ValidateRequest,
    ValidateResponse,
)
from forge_server.services import asset_service, llm_service, project_service
from forge_server.prompts.examples import EXAMPLES
from forge_server import config

logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Roblox Asset Forge",
    description="Chat with an LLM to build Roblox assets and move them in and out of .rbxmx",
    version=rbxmx.version(),
)


def _attachment(filename: str) -> str:
    """Content-Disposition value with an ASCII fallback and the UTF-8 name."""
    fallback = re.sub(r"[^\x20-\x7e]|[\\\"]", "_", filename)
    return f"attachment; filename=\"{fallback}\"; filename*=UTF-8''{quote(filename, safe='')}"


# ── REST Endpoints ──────────────────────────────────────────────


@app.get("/api/health", response_model=HealthResponse)
async def health():
    return HealthResponse(
        status="ok",
        version=rbxmx.version(),
        providers={
            "gemini": bool(config.GOOGLE_API_KEY),
            "claude": bool(config.ANTHROPIC_API_KEY),
        },
    )


@app.post("/api/validate", response_model=ValidateResponse)
async def validate(req: ValidateRequest):
    valid, node_count, error = asset_service.validate_asset_json(req.asset_json)
    return ValidateResponse(valid=valid, node_count=node_count, error=error)


@app.post("/api/export")
async def export(asset: rbxmx.AssetNode):
    data, stats = asset_service.export_rbxmx(asset)
    filename = asset_service.rbxmx_filename(asset)
    logger.info(f"Exported {filename} ({stats['node_count']} nodes, {stats['bytes']} bytes)")

    return Response(
        content=data,
        media_type="text/xml",
        headers={
            "Content-Disposition": _attachment(filename),
            "X-Stats": json.dumps(stats),
        },
    )


@app.post("/api/import", response_model=ImportResponse)
async def import_(req: ImportRequest):
    try:
        asset, stats = asset_service.import_rbxmx(req.xml)
    except rbxmx.StructuralError as e:
        logger.warning(f"Rejected rbxmx upload: {e}")
        return ImportResponse(explorer_root=req.explorer_root, error=str(e))

    explorer_root = None
    if req.explorer_root is not None:
        explorer_root = asset_service.merge_into_root(req.explorer_root, [asset])

    return ImportResponse(asset=asset, explorer_root=explorer_root, stats=stats)


@app.post("/api/chat", response_model=ChatResponse)
async def chat(req: ChatRequest):
    total_t0 = time.perf_counter()

    try:
        reply, assets, llm_meta = await llm_service.chat(
            req.message, req.history, req.explorer_root, req.provider, req.model
        )
    except Exception as e:
        logger.error(f"Chat failed: {e}")
        return ChatResponse(
            reply=llm_service.FAILURE_REPLY,
            message=ChatMessage(role="assistant", content=llm_service.FAILURE_REPLY),
            explorer_root=req.explorer_root,
            error=f"LLM error: {e}",
        )

    explorer_root = asset_service.merge_into_root(req.explorer_root, assets)
    total_ms = round((time.perf_counter() - total_t0) * 1000, 2)

    return ChatResponse(
        reply=reply,
        message=ChatMessage(
            role="assistant",
            content=reply,
            assets_generated=assets or None,
        ),
        assets=assets,
        explorer_root=explorer_root,
        timings={**llm_meta, "total_ms": total_ms},
        error=llm_meta.get("asset_error"),
    )


@app.get("/api/project/new", response_model=ProjectState)
async def new_project():
    return project_service.new_project()


@app.post("/api/project/save")
async def save_project(state: ProjectState):
    content = project_service.dump_project(state)
    filename = project_service.project_filename(state.project_name)

    return Response(
        content=content.encode("utf-8"),
        media_type="application/json",
        headers={"Content-Disposition": _attachment(filename)},
    )


@app.post("/api/project/load", response_model=ProjectState)
async def load_project(req: LoadProjectRequest):
    try:
        return project_service.load_project(req.content)
    except project_service.ProjectFormatError as e:
        raise HTTPException(status_code=422, detail=str(e))


@app.get("/api/examples")
async def examples():
    return [
        {"prompt": ex["prompt"], "asset_json": ex["asset_json"]}
        for ex in EXAMPLES
    ]


# ── WebSocket Endpoint ──────────────────────────────────────────


@app.websocket("/ws/chat")
async def ws_chat(ws: WebSocket):
    await ws.accept()

    try:
        while True:
            data = await ws.receive_json()

            try:
                req = ChatRequest.model_validate(data)
            except ValidationError as e:
                await ws.send_json({"type": "error", "message": f"Invalid request: {e}"})
                continue

            total_t0 = time.perf_counter()
            await ws.send_json({"type": "status", "message": "Thinking..."})

            accumulated = ""
            try:
                async for token in llm_service.stream_chat(
                    req.message, req.history, req.explorer_root, req.provider, req.model
                ):
                    accumulated += token
                    await ws.send_json({"type": "tokens", "content": token})
            except Exception as e:
                await ws.send_json({"type": "error", "message": f"LLM error: {e}"})
                continue

            try:
                assets = llm_service.assets_from_reply(accumulated)
            except (ValueError, ValidationError) as e:
                await ws.send_json(
                    {"type": "error", "message": f"Asset extraction error: {e}"}
                )
                assets = []

            if assets:
                explorer_root = asset_service.merge_into_root(req.explorer_root, assets)
                await ws.send_json({
                    "type": "assets",
                    "assets": [a.model_dump(by_alias=True, exclude_none=True) for a in assets],
                    "explorerRoot": explorer_root.model_dump(by_alias=True, exclude_none=True),
                })

            total_ms = round((time.perf_counter() - total_t0) * 1000, 2)
            await ws.send_json({"type": "done", "total_time_ms": total_ms})

    except WebSocketDisconnect:
        pass


# ── Main ────────────────────────────────────────────────────────


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "forge_server.main:app",
        host=config.HOST,
        port=config.PORT,
        reload=True,
    )
