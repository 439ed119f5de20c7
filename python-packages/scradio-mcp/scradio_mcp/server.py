"""MCP server for scradio — create, inspect and host shared listening sessions."""

import asyncio
import json
from dataclasses import asdict
from typing import Any

from mcp.server import Server
from mcp.server.stdio import stdio_server
from mcp import types

# ── Tool definitions ─────────────────────────────────────────────────────────

_SESSION_ID = {
    "type": "object",
    "properties": {"session_id": {"type": "string"}},
    "required": ["session_id"],
}

TOOLS: list[types.Tool] = [
    types.Tool(
        name="create_session",
        description=(
            "Create a listening session for a SoundCloud track. The host credential "
            "is kept by this server so report_state can act as host."
        ),
        inputSchema={
            "type": "object",
            "properties": {
                "track_url": {
                    "type": "string",
                    "description": "SoundCloud track URL (https://soundcloud.com/...).",
                },
            },
            "required": ["track_url"],
        },
    ),
    types.Tool(
        name="get_session",
        description=(
            "Fetch a session and compute where a listener should be right now "
            "(target_ms), whether the host is offline, and a status label."
        ),
        inputSchema=_SESSION_ID,
    ),
    types.Tool(
        name="sync_clock",
        description="Round-trip to the backend clock. Returns offset_ms (server minus local).",
        inputSchema={"type": "object", "properties": {}},
    ),
    types.Tool(
        name="report_state",
        description="Act as host: report playback state. Renews the host lease.",
        inputSchema={
            "type": "object",
            "properties": {
                "session_id": {"type": "string"},
                "action": {
                    "type": "string",
                    "enum": ["PLAY", "PAUSE", "SEEK", "HEARTBEAT"],
                },
                "position_ms": {"type": "number", "description": "Playhead in milliseconds."},
                "playing": {
                    "type": "boolean",
                    "description": "Play intent. Defaults from the action, else the last known state.",
                },
                "host_secret": {
                    "type": "string",
                    "description": "Host credential. Omit to use the one saved at creation.",
                },
            },
            "required": ["session_id", "action", "position_ms"],
        },
    ),
    types.Tool(
        name="forget_session",
        description="Drop the saved host credential and cached state of a session.",
        inputSchema=_SESSION_ID,
    ),
]

# ── Handler factory (exported for testing with a fake client) ────────────────


def create_handlers(client=None, credentials=None, now_ms=None):
    """
    Return a dict of handler coroutines sharing one client and clock.

    Pass a fake *client* (same methods as ``SessionApiClient``) in tests;
    omit it to build a real one from ``~/.scradio-config.json``.
    *credentials* defaults to the configured host credential file.
    """
    from scradio import (
        ClockOffsetEstimator,
        HostAction,
        HostCredentialStore,
        ListenerStatus,
        SessionApiClient,
        StateUpdate,
        lease_expired,
        load_config,
        target_position_ms,
    )
    from scradio.clock import wall_clock_ms

    if client is None or credentials is None:
        config = load_config()
        if client is None:
            client = SessionApiClient(config.backend_url)
        if credentials is None:
            credentials = HostCredentialStore(config.resolved_credentials_path())

    clock = ClockOffsetEstimator(client.server_time_ms, now_ms or wall_clock_ms)
    snapshots: dict[str, Any] = {}

    def _snapshot_json(snapshot) -> dict:
        server_now = clock.server_now_ms()
        offline = lease_expired(snapshot, server_now)
        return {
            **asdict(snapshot),
            "target_ms": target_position_ms(snapshot, server_now),
            "host_offline": offline,
            "status": ListenerStatus(snapshot.id, snapshot, offline, False, False).label,
        }

    async def _fetch(session_id: str):
        snapshot = await asyncio.to_thread(client.get_session, session_id)
        snapshots[session_id] = snapshot
        return snapshot

    async def list_tools() -> list[types.Tool]:
        return TOOLS

    async def list_resources() -> list[types.Resource]:
        return [
            types.Resource(
                uri=f"session://{sid}",
                name=f"Session {sid}",
                description="JSON snapshot of the session row with its computed target.",
                mimeType="application/json",
            )
            for sid in snapshots
        ]

    async def read_resource(uri: str) -> str:
        prefix = "session://"
        if not uri.startswith(prefix):
            raise ValueError(f"Unknown resource URI: {uri!r}")
        session_id = uri[len(prefix):]
        snapshot = snapshots.get(session_id) or await _fetch(session_id)
        return json.dumps(_snapshot_json(snapshot))

    async def call_tool(name: str, arguments: dict) -> list[types.TextContent]:
        match name:
            case "create_session":
                created = await asyncio.to_thread(client.create_session, arguments["track_url"])
                credentials.put(created.session_id, created.host_secret)
                await _fetch(created.session_id)
                return [types.TextContent(type="text", text=json.dumps(asdict(created)))]

            case "get_session":
                snapshot = await _fetch(arguments["session_id"])
                return [types.TextContent(type="text", text=json.dumps(_snapshot_json(snapshot)))]

            case "sync_clock":
                offset = await clock.estimate()
                return [types.TextContent(type="text", text=json.dumps({"offset_ms": offset}))]

            case "report_state":
                session_id = arguments["session_id"]
                secret = arguments.get("host_secret") or credentials.get(session_id)
                if not secret:
                    raise ValueError(f"No host credential for session_id: {session_id!r}")

                action = HostAction(arguments["action"])
                playing = arguments.get("playing")
                if playing is None:
                    if action is HostAction.PLAY:
                        playing = True
                    elif action is HostAction.PAUSE:
                        playing = False
                    else:
                        known = snapshots.get(session_id)
                        playing = known.playing if known else False

                update = StateUpdate(
                    action=action,
                    playing=bool(playing),
                    position_ms=arguments["position_ms"],
                    client_sent_at_ms=int(clock.local_now_ms()),
                )
                t0 = clock.local_now_ms()
                applied = await asyncio.to_thread(client.post_state, session_id, secret, update)
                clock.observe(applied.server_time, t0, clock.local_now_ms())
                return [types.TextContent(
                    type="text",
                    text=json.dumps({
                        "ok": True,
                        "server_time": applied.server_time,
                        "host_lease_expires_at": applied.host_lease_expires_at,
                    }),
                )]

            case "forget_session":
                session_id = arguments["session_id"]
                had_secret = credentials.forget(session_id)
                had_snapshot = snapshots.pop(session_id, None) is not None
                return [types.TextContent(
                    type="text",
                    text=json.dumps({"ok": had_secret or had_snapshot}),
                )]

            case _:
                raise ValueError(f"Unknown tool: {name!r}")

    return {
        "snapshots": snapshots,
        "clock": clock,
        "list_tools": list_tools,
        "list_resources": list_resources,
        "read_resource": read_resource,
        "call_tool": call_tool,
    }


# ── Entry point ───────────────────────────────────────────────────────────────


async def main() -> None:
    """Wire up the MCP server and serve over stdio."""
    h = create_handlers()

    app = Server("scradio-mcp")

    @app.list_tools()
    async def _list_tools():
        return await h["list_tools"]()

    @app.list_resources()
    async def _list_resources():
        return await h["list_resources"]()

    @app.read_resource()
    async def _read_resource(uri) -> str:
        return await h["read_resource"](str(uri))

    @app.call_tool()
    async def _call_tool(name: str, arguments: dict):
        return await h["call_tool"](name, arguments)

    async with stdio_server() as (read_stream, write_stream):
        await app.run(read_stream, write_stream, app.create_initialization_options())


if __name__ == "__main__":
    asyncio.run(main())
