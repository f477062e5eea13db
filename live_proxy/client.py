"""
Terminal client for the Gemini Live Proxy

Opens a text or playground session against a running proxy.

CLI Usage:
    python -m live_proxy.client chat "I have had a headache for three days"
    echo "hello" | python -m live_proxy.client chat
    python -m live_proxy.client playground --prompt "Name three colors" --model gemini-2.5-flash
    python -m live_proxy.client playground --prompt "..." --schema schema.json
"""

import argparse
import asyncio
import json
import logging
import sys
from typing import Any, Dict, Iterable, List, Optional
from urllib.parse import urlencode

from websockets import connect
from websockets.exceptions import ConnectionClosed

from live_proxy.models import AVAILABLE_MODELS, DEFAULT_PLAYGROUND_CONFIG
from live_proxy.transcript import Transcript

logger = logging.getLogger(__name__)

DEFAULT_PROXY_URL = "ws://localhost:3001/ws"


class ProxyError(Exception):
    """Raised when the proxy reports an error frame"""
    pass


def build_url(base_url: str, mode: str, **params: Optional[str]) -> str:
    query = {"mode": mode}
    query.update({k: v for k, v in params.items() if v})
    separator = "&" if "?" in base_url else "?"
    return f"{base_url}{separator}{urlencode(query)}"


async def _expect_session_open(websocket, mode: str, timeout: float) -> None:
    message = json.loads(await asyncio.wait_for(websocket.recv(), timeout=timeout))
    if message.get("type") == "error":
        raise ProxyError(message.get("message", "session setup failed"))
    if message.get("type") != "session_open" or message.get("mode") != mode:
        raise ProxyError(f"Unexpected first message: {message}")


async def run_chat(
    url: str,
    prompts: Iterable[str],
    timeout: float = 60.0,
    patient: Optional[Dict[str, str]] = None,
    out=sys.stdout,
) -> Transcript:
    """
    Send each prompt as a text turn and stream the replies.

    Returns:
        Transcript: Conversation recorded locally
    """
    transcript = Transcript()
    async with connect(build_url(url, "text", **(patient or {}))) as websocket:
        await _expect_session_open(websocket, "text", timeout)

        for prompt in prompts:
            if not prompt.strip():
                continue
            transcript.add_user_text(prompt)
            out.write(f"You: {prompt}\nAI: ")
            await websocket.send(json.dumps({"type": "text", "text": prompt}))

            reply = ""
            while True:
                message = json.loads(await asyncio.wait_for(websocket.recv(), timeout=timeout))
                msg_type = message.get("type")
                if msg_type == "text_chunk":
                    reply += message.get("text", "")
                    out.write(message.get("text", ""))
                    out.flush()
                elif msg_type == "text_complete":
                    break
                elif msg_type == "error":
                    raise ProxyError(message.get("message", "unknown error"))
            out.write("\n")
            transcript.add_ai_text(reply)

    return transcript


def build_playground_request(args: argparse.Namespace) -> Dict[str, Any]:
    request: Dict[str, Any] = dict(DEFAULT_PLAYGROUND_CONFIG)
    request.update({
        "type": "playground_request",
        "model": args.model,
        "systemInstruction": args.system or "",
        "userPrompt": args.prompt,
        "temperature": args.temperature,
        "topK": args.top_k,
        "topP": args.top_p,
        "maxOutputTokens": args.max_output_tokens,
    })
    if args.schema:
        with open(args.schema, "r", encoding="utf-8") as f:
            request["responseJsonSchema"] = json.load(f)
        request["useStructuredOutput"] = True
    return request


async def run_playground(url: str, request: Dict[str, Any], timeout: float = 120.0, out=sys.stdout) -> Dict[str, Any]:
    """
    Send one playground request and return the completion frame.

    Raises:
        ProxyError: If the proxy reports a playground error
    """
    async with connect(build_url(url, "playground")) as websocket:
        await _expect_session_open(websocket, "playground", timeout)
        await websocket.send(json.dumps(request))

        while True:
            message = json.loads(await asyncio.wait_for(websocket.recv(), timeout=timeout))
            msg_type = message.get("type")
            if msg_type == "playground_chunk":
                out.write(message.get("text", ""))
                out.flush()
            elif msg_type == "playground_complete":
                out.write("\n")
                return message
            elif msg_type in ("playground_error", "error"):
                raise ProxyError(message.get("error") or message.get("message") or "unknown error")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Terminal client for the Gemini Live Proxy")
    parser.add_argument("--url", default=DEFAULT_PROXY_URL, help=f"Proxy WebSocket URL (default: {DEFAULT_PROXY_URL})")
    parser.add_argument("--timeout", type=float, default=60.0, help="Per-message timeout in seconds")
    subparsers = parser.add_subparsers(dest="command", required=True)

    chat = subparsers.add_parser("chat", help="Text conversation with the assistant")
    chat.add_argument("prompts", nargs="*", help="Prompts to send; reads stdin lines when omitted")
    chat.add_argument("--name", help="Patient name")
    chat.add_argument("--age", help="Patient age")
    chat.add_argument("--gender", help="Patient gender")

    playground = subparsers.add_parser("playground", help="One-shot request with custom generation config")
    playground.add_argument("--prompt", required=True, help="User prompt")
    playground.add_argument("--system", help="System instruction")
    playground.add_argument(
        "--model",
        default=DEFAULT_PLAYGROUND_CONFIG["model"],
        choices=[m["id"] for m in AVAILABLE_MODELS],
    )
    playground.add_argument("--temperature", type=float, default=DEFAULT_PLAYGROUND_CONFIG["temperature"])
    playground.add_argument("--top-k", type=float, default=DEFAULT_PLAYGROUND_CONFIG["topK"])
    playground.add_argument("--top-p", type=float, default=DEFAULT_PLAYGROUND_CONFIG["topP"])
    playground.add_argument("--max-output-tokens", type=int, default=DEFAULT_PLAYGROUND_CONFIG["maxOutputTokens"])
    playground.add_argument("--schema", help="Path to a JSON schema file; enables structured output")

    return parser


async def _cli_main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        if args.command == "chat":
            prompts = args.prompts or (line.rstrip("\n") for line in sys.stdin)
            patient = {"name": args.name, "age": args.age, "gender": args.gender}
            transcript = await run_chat(args.url, prompts, timeout=args.timeout, patient=patient)
            logger.info(f"Conversation finished with {len(transcript)} entries")
        else:
            completion = await run_playground(args.url, build_playground_request(args), timeout=args.timeout)
            print(json.dumps(completion.get("metadata", {}), indent=2))
    except ProxyError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except (OSError, asyncio.TimeoutError, ConnectionClosed) as e:
        print(f"Connection failed: {e}", file=sys.stderr)
        return 1
    return 0


def main(argv: Optional[List[str]] = None) -> None:
    logging.basicConfig(level=logging.WARNING, format="%(levelname)s: %(message)s")
    sys.exit(asyncio.run(_cli_main(argv)))


if __name__ == "__main__":
    main()
