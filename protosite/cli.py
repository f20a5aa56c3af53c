"""Command-line entry point.

Usage::

    protosite serve --port 3000
    protosite generate https://example.com/design.png --output ./my-site
    protosite check
"""

from __future__ import annotations

import argparse
import asyncio
import sys
import time
from pathlib import Path

from protosite.ai.designer import DesignAssistant
from protosite.ai.ollama_client import OllamaClient
from protosite.config import Config
from protosite.errors import ProtositeError
from protosite.pipeline import GenerationPipeline
from protosite.utils import (
    configure_logging,
    console,
    format_duration,
    print_error,
    print_success,
    print_summary_table,
    print_warning,
)


def _designer(config: Config) -> DesignAssistant:
    return DesignAssistant(
        OllamaClient(base_url=config.ollama.url, timeout=config.ollama.timeout),
        vision_model=config.ollama.vision_model,
        code_model=config.ollama.code_model,
        code_model_fallback=config.ollama.code_model_fallback,
    )


def cmd_serve(config: Config, args: argparse.Namespace) -> int:
    import uvicorn

    from protosite.server import create_app

    host = args.host or config.server.host
    port = args.port or config.server.port
    console.print(f"[bold bright_cyan]Protosite backend running on {host}:{port}[/bold bright_cyan]")
    # Generation and multi-file exports are long-running; keep connections open.
    uvicorn.run(create_app(config), host=host, port=port, timeout_keep_alive=600)
    return 0


async def _generate(config: Config, image_url: str, output: Path) -> int:
    pipeline = GenerationPipeline(_designer(config), config.limits)
    start = time.monotonic()
    try:
        project = await pipeline.generate_from_url(image_url)
    except ProtositeError as exc:
        print_error(f"Generation failed: {exc}")
        return 1

    written = await project.write_to(output)
    print_summary_table(
        {
            "Output": str(output.resolve()),
            "Files": str(len(written)),
            "Duration": format_duration(time.monotonic() - start),
        },
        title="Generated Project",
    )
    print_success("Project generated. Run 'npm install && npm run dev' inside the output directory.")
    return 0


def cmd_generate(config: Config, args: argparse.Namespace) -> int:
    return asyncio.run(_generate(config, args.image_url, Path(args.output)))


async def _check(config: Config) -> int:
    client = OllamaClient(base_url=config.ollama.url, timeout=config.ollama.timeout)
    ok = True
    if await client.is_available():
        models = await client.list_models()
        console.print(f"  [green]+[/green] Ollama online ({len(models)} model(s) available)")
        for model in (config.ollama.vision_model, config.ollama.code_model):
            if model not in models:
                print_warning(f"  Model {model} is not pulled (run 'ollama pull {model}')")
                ok = False
    else:
        print_error(f"  Ollama is not reachable at {config.ollama.url}")
        ok = False

    if config.github.is_configured:
        console.print("  [green]+[/green] GitHub OAuth configured")
    else:
        print_warning(
            "  GitHub OAuth not configured (set GITHUB_CLIENT_ID, "
            "GITHUB_CLIENT_SECRET and GITHUB_CALLBACK_URL)"
        )
        ok = False
    return 0 if ok else 1


def cmd_check(config: Config, args: argparse.Namespace) -> int:
    return asyncio.run(_check(config))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="protosite",
        description="Protosite -- turn Canva designs into Vite + React projects",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=(
            "Examples:\n"
            "  protosite serve --port 3000\n"
            "  protosite generate https://example.com/design.png -o ./my-site\n"
            "  protosite check\n"
        ),
    )
    parser.add_argument("--log-level", default=None, help="Logging level (default: INFO)")
    sub = parser.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", help="Run the HTTP backend")
    serve.add_argument("--host", default=None)
    serve.add_argument("--port", type=int, default=None)
    serve.set_defaults(func=cmd_serve)

    generate = sub.add_parser("generate", help="Generate a project from an image URL")
    generate.add_argument("image_url", help="URL of the exported PNG/JPEG design")
    generate.add_argument(
        "--output", "-o", default="./output", help="Output directory (default: ./output)"
    )
    generate.set_defaults(func=cmd_generate)

    check = sub.add_parser("check", help="Check Ollama and GitHub configuration")
    check.set_defaults(func=cmd_check)
    return parser


def main(argv: list[str] | None = None) -> None:
    """CLI entry point for ``protosite`` and ``python -m protosite``."""
    args = build_parser().parse_args(argv)
    config = Config.from_env()
    configure_logging(args.log_level or config.log_level)
    sys.exit(args.func(config, args))


if __name__ == "__main__":
    main()
