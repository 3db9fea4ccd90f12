"""yaaiig command-line entrypoints."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
import uuid
from contextlib import asynccontextmanager
from dataclasses import replace
from pathlib import Path
from typing import Any, AsyncIterator

from .channels.registry import TaskChannelRegistry
from .config import ClientConfig
from .errors import ClientError
from .forms import FormState
from .history import HistoryEntry
from .media.slots import MediaSlotModel, PreviewAllocator
from .orchestrator import GenerationOrchestrator, Task
from .progress.board import ProgressBoard
from .progress.render import BannerRenderer
from .progress.title import PageTitle, terminal_title_sink
from .runs.events import EventWriter
from .transport.http import ApiClient
from .utils import load_dotenv
from .workflows import WorkflowCatalog


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="yaaiig", description="Submit and track generation tasks")
    parser.add_argument("--base-url", dest="base_url", help="Backend base URL")
    parser.add_argument("--events", help="Path to events.jsonl")
    parser.add_argument("-v", "--verbose", action="store_true")
    sub = parser.add_subparsers(dest="command")

    sub.add_parser("workflows", help="List available workflows")

    generate = sub.add_parser("generate", help="Submit a generation and follow its progress")
    generate.add_argument("--workflow", required=True)
    generate.add_argument("--prompt", default="")
    generate.add_argument("--name", default="")
    generate.add_argument("--seed", type=int, help="Use this seed and lock it")
    generate.add_argument("--image", action="append", default=[], help="Local image file, in slot order")
    generate.add_argument("--image-url", dest="image_urls", action="append", default=[], help="Remote image URL")
    generate.add_argument("--audio", action="append", default=[], help="Local audio file, in slot order")
    generate.add_argument("--field", action="append", default=[], help="Extra workflow field as key=value")

    regenerate = sub.add_parser("regenerate", help="Re-run post-generation fields for a media item")
    regenerate.add_argument("uid")
    regenerate.add_argument("fields", nargs="+")

    upload = sub.add_parser("upload", help="Upload a media file")
    upload.add_argument("kind", choices=["image", "audio"])
    upload.add_argument("path")
    upload.add_argument("--name")

    return parser


def _parse_fields(items: list[str]) -> dict[str, Any]:
    fields: dict[str, Any] = {}
    for item in items:
        key, sep, raw = item.partition("=")
        key = key.strip()
        if not sep or not key:
            raise ValueError(f"Expected key=value, got {item!r}")
        try:
            fields[key] = json.loads(raw)
        except ValueError:
            fields[key] = raw
    return fields


def _config_from_args(args: argparse.Namespace) -> ClientConfig:
    config = ClientConfig.from_env()
    overrides: dict[str, Any] = {}
    if args.base_url:
        overrides["base_url"] = args.base_url.rstrip("/")
    if args.events:
        overrides["events_path"] = Path(args.events)
    if not overrides:
        return config
    return replace(config, **overrides)


def _notice(level: str, message: str) -> None:
    stream = sys.stderr if level == "error" else sys.stdout
    print(message, file=stream)


@asynccontextmanager
async def _session(config: ClientConfig) -> AsyncIterator[tuple[ApiClient, GenerationOrchestrator]]:
    api = ApiClient(config)
    registry = TaskChannelRegistry(api.stream_factory(), timeout_s=config.channel_timeout_s)
    board = ProgressBoard(
        title=PageTitle(config.default_title, terminal_title_sink() if config.terminal_title else None),
        renderer=BannerRenderer(),
        complete_hide_s=config.complete_hide_s,
        error_hide_s=config.error_hide_s,
    )
    events = EventWriter(config.events_path, uuid.uuid4().hex) if config.events_path else None
    orchestrator = GenerationOrchestrator(
        api,
        registry,
        board=board,
        slots=MediaSlotModel(allocator=PreviewAllocator(config.preview_dir)),
        form=FormState(),
        config=config,
        events=events,
        notify=_notice,
    )
    try:
        yield api, orchestrator
    finally:
        orchestrator.dispose()
        registry.dispose()
        await registry.drain()
        await api.aclose()


async def _follow(task: Task) -> int:
    try:
        entry = await task.wait()
    except ClientError as exc:
        print(f"Task {task.id} failed: {exc.user_message}", file=sys.stderr)
        return 1
    if entry is not None:
        _print_entry(entry)
    return 0


def _print_entry(entry: HistoryEntry) -> None:
    print(json.dumps(entry.to_payload(), indent=2, sort_keys=True))


async def _handle_workflows(config: ClientConfig) -> int:
    async with _session(config) as (api, _orchestrator):
        catalog = WorkflowCatalog(api)
        workflows = await catalog.init()
    for workflow in workflows:
        details = [workflow.kind]
        if workflow.required_image_slots:
            details.append(f"images={workflow.required_image_slots}")
        if workflow.required_audio_slots:
            details.append(f"audio={workflow.required_audio_slots}")
        details.append(f"orientation={'detect' if workflow.detects_orientation else workflow.orientation}")
        print(f"{workflow.name} ({', '.join(details)})")
    return 0


async def _handle_generate(args: argparse.Namespace, config: ClientConfig) -> int:
    extra = _parse_fields(args.field)
    async with _session(config) as (api, orchestrator):
        catalog = WorkflowCatalog(api)
        await catalog.init()
        workflow = catalog.get(args.workflow)
        if workflow is None:
            print(f"Unknown workflow: {args.workflow}", file=sys.stderr)
            return 1
        orchestrator.select_workflow(workflow)
        form = orchestrator.form
        form.update({"prompt": args.prompt, "name": args.name, **extra})
        if args.seed is not None:
            form.use_seed(args.seed)
        images = orchestrator.slots.images
        index = 0
        for path in args.image:
            if index >= images.capacity:
                break
            file_path = Path(path)
            images.set_local(
                index,
                file_path.read_bytes(),
                name=file_path.stem,
                format=file_path.suffix.lstrip(".") or None,
            )
            index += 1
        for url in args.image_urls:
            if index >= images.capacity:
                break
            images.set_remote(index, url)
            index += 1
        audios = orchestrator.slots.audios
        for audio_index, path in enumerate(args.audio[: audios.capacity]):
            file_path = Path(path)
            audios.set_local(
                audio_index,
                file_path.read_bytes(),
                name=file_path.stem,
                format=file_path.suffix.lstrip(".") or None,
            )
        task = await orchestrator.generate()
        print(f"Task {task.id} started (seed {form.seed})")
        return await _follow(task)


async def _handle_regenerate(args: argparse.Namespace, config: ClientConfig) -> int:
    async with _session(config) as (_api, orchestrator):
        task = await orchestrator.regenerate(args.uid, args.fields)
        print(f"Task {task.id} started")
        return await _follow(task)


async def _handle_upload(args: argparse.Namespace, config: ClientConfig) -> int:
    path = Path(args.path)
    async with _session(config) as (_api, orchestrator):
        task = await orchestrator.upload(args.kind, path.read_bytes(), path.name, name=args.name)
        print(f"Task {task.id} started")
        return await _follow(task)


async def _dispatch(args: argparse.Namespace) -> int:
    config = _config_from_args(args)
    if args.command == "workflows":
        return await _handle_workflows(config)
    if args.command == "generate":
        return await _handle_generate(args, config)
    if args.command == "regenerate":
        return await _handle_regenerate(args, config)
    if args.command == "upload":
        return await _handle_upload(args, config)
    return 1


def main() -> None:
    load_dotenv()
    parser = _build_parser()
    args = parser.parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    if args.command is None:
        parser.print_help()
        raise SystemExit(1)
    try:
        raise SystemExit(asyncio.run(_dispatch(args)))
    except ClientError as exc:
        print(exc.user_message, file=sys.stderr)
        raise SystemExit(1)
    except (OSError, ValueError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        raise SystemExit(1)


if __name__ == "__main__":
    main()
