from __future__ import annotations

import argparse
import asyncio
import json
import logging
from dataclasses import replace

from fm_chat.app.settings import AppSettings
from fm_chat.app.wiring import EngineBundle, build_bundle
from fm_chat.domain.errors import ConversationNotFound, ModelError


def _build_settings(args: argparse.Namespace) -> AppSettings:
    settings = AppSettings.from_env()

    if args.store is not None:
        settings = replace(settings, data_store_dir=args.store)

    budget = settings.budget
    if args.hard_limit is not None:
        budget = replace(budget, hard_limit=args.hard_limit)
    if args.safe_limit is not None:
        budget = replace(budget, safe_limit=args.safe_limit)
    if args.no_summary:
        settings = replace(settings, engine=replace(settings.engine, enable_summary=False))
    return replace(settings, budget=budget)


async def _repl(bundle: EngineBundle, cid: str, debug: bool) -> None:
    engine = bundle.engine
    repo = bundle.repo

    print(f"Conversation: {cid}")
    print("Type /exit to quit.")
    print("Commands: /list | /context | /delete\n")

    while True:
        user_text = (await asyncio.to_thread(input, "you> ")).strip()
        if not user_text:
            continue
        if user_text == "/exit":
            break

        if user_text == "/list":
            convos = repo.list_conversations()
            if not convos:
                print("bot> (no conversations)\n")
            else:
                for c in convos:
                    print(f"  {c.conversation_id} | {c.title or '(untitled)'} | turns={len(c.turns)}")
                print()
            continue

        if user_text == "/context":
            try:
                decision = await engine.preview_context(cid)
            except ConversationNotFound:
                print("bot> (empty conversation)\n")
                continue
            print("bot> " + json.dumps(decision.as_meta(), ensure_ascii=False, indent=2) + "\n")
            continue

        if user_text == "/delete":
            ok = repo.delete(cid)
            print(f"bot> delete: {'ok' if ok else 'not found'}\n")
            continue

        availability = await bundle.llm.check_availability()
        try:
            answer, meta = await engine.handle_user_message_ex(cid, user_text, availability=availability)
        except ModelError as e:
            print(f"bot> (model error: {e})\n")
            continue

        print(f"bot> {answer}\n")
        if meta["context"]["degraded"] or meta["context"]["truncated"]:
            print("warn> context was shortened: " + ", ".join(meta["context"]["warnings"]) + "\n")

        if debug:
            print("debug> " + json.dumps(meta, ensure_ascii=False, indent=2) + "\n")


def main() -> None:
    parser = argparse.ArgumentParser()
    parser.add_argument("--cid", required=True)
    parser.add_argument("--debug", action="store_true")

    parser.add_argument("--store", default=None, help="Override data store dir")
    parser.add_argument("--hard-limit", type=int, default=None)
    parser.add_argument("--safe-limit", type=int, default=None)
    parser.add_argument("--no-summary", action="store_true", help="Disable summarization (sliding window only)")
    args = parser.parse_args()

    logging.basicConfig(level=logging.DEBUG if args.debug else logging.INFO, format="%(message)s")

    settings = _build_settings(args)
    try:
        bundle = build_bundle(settings)
    except ValueError as e:
        parser.error(str(e))
    asyncio.run(_repl(bundle, args.cid, args.debug))


if __name__ == "__main__":
    main()
