#!/usr/bin/env python3
"""
Taleroute text runner
- Options are shown only when their requirements pass; hidden options appear once unlocked.
- Combat scenes list combat actions until the fight ends, then routing resumes.
- Timed scenes finish with W once their steps are played.
Usage: python -m taleroute.cli [story.json]
"""

import argparse
import logging
import sys
import textwrap
import time
from pathlib import Path

if __package__ in (None, ""):
    sys.path.insert(0, str(Path(__file__).resolve().parent.parent))
    from taleroute.conditions import describe_guard
    from taleroute.errors import AuthoringGapError, InvalidTransitionError, MalformedGraphError
    from taleroute.loader import load_story
    from taleroute.routing import GoTo
    from taleroute.session import StorySession
    from taleroute.settings import SETTINGS_PATH, load_settings, save_settings
else:
    from .conditions import describe_guard
    from .errors import AuthoringGapError, InvalidTransitionError, MalformedGraphError
    from .loader import load_story
    from .routing import GoTo
    from .session import StorySession
    from .settings import SETTINGS_PATH, load_settings, save_settings

DEFAULT_STORY_PATH = "story/story.json"
LINE_WIDTH = 80


def separator(primary: bool) -> str:
    return ("=" if primary else "-") * LINE_WIDTH


def emit_wrapped(text: str) -> None:
    for paragraph in text.split("\n"):
        if paragraph.strip():
            for line in textwrap.wrap(paragraph, width=LINE_WIDTH):
                print(line)
        else:
            print("")


def render_combat(session: StorySession) -> None:
    snapshot = session.encounter.snapshot()
    print(
        f"{snapshot.enemy_name}: {snapshot.enemy_hp}/{snapshot.enemy_hp_max} HP | "
        f"Party: {snapshot.party_hp}/{snapshot.party_hp_max} HP | Round {snapshot.round}"
    )
    for entry in snapshot.log:
        print(f"  {entry.summary}")


def render_scene(session: StorySession):
    """Print the current scene and return the numbered entries the player can pick."""
    scene = session.scene
    print("\n" + separator(primary=True))
    print(scene.title.upper())
    print(separator(primary=False))
    emit_wrapped(scene.text)
    print("")
    print(f"HP:{session.party_hp}/{session.party_hp_max}")
    if session.settings.debug:
        global_tags = ", ".join(sorted(session.tags.global_tags)) or "—"
        scene_tags = ", ".join(sorted(session.tags.scene_tags)) or "—"
        print(f"  DEBUG tags: global [{global_tags}] scene [{scene_tags}]")
    if session.encounter is not None:
        render_combat(session)
    print(separator(primary=False))

    if session.ended:
        return []

    actions = session.available_actions()
    if actions:
        for idx, action in enumerate(actions, start=1):
            label = action.text
            effect = getattr(action, "effect", None)
            if effect is not None and effect.describe():
                label = f"{label} ({effect.describe()})"
            print(f"  {idx}. {label}")
        return [("act", action.id) for action in actions]

    if scene.mode == "timed":
        remaining = session.timer_remaining() or 0
        status = scene.timed.status_text or f"{scene.timed.kind.title()}..."
        print(f"  {status} ({remaining:.0f}s left)")
        print("  W. Wait it out")
        return []

    options = session.offered_options()
    for idx, option in enumerate(options, start=1):
        label = option.text
        if option.is_risky:
            label = f"[Risky] {label}"
        if session.settings.debug:
            resolution = session.preview(option)
            target = resolution.scene_id if isinstance(resolution, GoTo) else "None"
            label = f"{label} (Target: {target} | Req: {describe_guard(option.requires)})"
        print(f"  {idx}. {label}")
    hidden = sum(
        1
        for option in scene.options
        if not option.default_visible and option.id not in session.unlocked_options
    )
    if hidden > 0:
        print(f"  ({hidden} option(s) remain hidden.)")
    return [("choose", option.id) for option in options]


def show_history(session: StorySession) -> None:
    if not session.history:
        print("No transitions yet.")
        return
    for idx, entry in enumerate(session.history, start=1):
        print(f"{idx}. {entry['from']} -> {entry['to']} ({entry['choice']})")


def report(result) -> None:
    for line in result.narration:
        emit_wrapped(line)
    if result.authoring_gap:
        print("[!] Nothing happens; that choice leads nowhere yet. Try another.")


def wait_out(session: StorySession, skip_timers: bool):
    remaining = session.timer_remaining() or 0
    if remaining > 0 and not session.scene.timed.allow_early:
        if skip_timers:
            return session.finish_timed_scene(now=session.clock() + remaining)
        print(f"Waiting {remaining:.0f}s...")
        time.sleep(remaining)
    return session.finish_timed_scene()


def handle_debug_command(session: StorySession, raw: str) -> None:
    parts = raw.split()
    command = parts[0].lower()
    if command == "/goto":
        if len(parts) < 2:
            print("Usage: /goto <scene_id>")
            return
        try:
            session.enter_scene(parts[1])
        except InvalidTransitionError as exc:
            print(f"[!] {exc}")
            return
        print(f"[#] Debug: moved to {parts[1]}.")
        return
    if command == "/give":
        if len(parts) < 2:
            print("Usage: /give <tag>")
            return
        session.tags.add_global(parts[1])
        print(f"[#] Debug: global tag granted: {parts[1]}")
        return
    print("Unknown debug command.")


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Play a Taleroute story in the terminal.")
    parser.add_argument("story", nargs="?", default=DEFAULT_STORY_PATH)
    parser.add_argument("--settings", default=str(SETTINGS_PATH), help="Settings JSON path.")
    parser.add_argument("--debug", action="store_true", help="Show tags, route targets and debug commands.")
    parser.add_argument("--verbose", action="store_true", help="Log engine activity.")
    parser.add_argument("--skip-timers", action="store_true", help="Finish timed scenes instantly.")
    parser.add_argument(
        "--gap-policy", choices=("stay", "raise"), help="What to do when an option matches no route."
    )
    parser.add_argument(
        "--save-settings", action="store_true", help="Write the effective settings back to --settings."
    )
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    try:
        graph = load_story(args.story)
    except FileNotFoundError:
        print(f"[!] Story file not found: {args.story}", file=sys.stderr)
        return 1
    except MalformedGraphError as exc:
        print(str(exc), file=sys.stderr)
        return 1

    settings = load_settings(args.settings)
    if args.debug:
        settings.debug = True
    if args.gap_policy:
        settings.gap_policy = args.gap_policy
    if args.save_settings:
        settings = save_settings(settings, args.settings)
    session = StorySession(graph, settings)
    session.start()
    print(f"\n=== {graph.title} ===")

    while True:
        entries = render_scene(session)
        if session.ended:
            print(f"\n*** Ending reached: {session.scene.title} ***")
            return 0

        raw = input("> ").strip()
        choice = raw.lower()
        if session.settings.debug and raw.startswith("/"):
            handle_debug_command(session, raw)
            continue
        if choice == "q":
            print("Bye.")
            return 0
        if choice == "h":
            show_history(session)
            continue
        try:
            if choice == "w" and session.scene.mode == "timed" and not entries:
                report(wait_out(session, args.skip_timers))
                continue
            if not choice.isdigit():
                print("Enter a number, H for history or Q to quit.")
                continue
            idx = int(choice)
            if not (1 <= idx <= len(entries)):
                print("Pick a valid number.")
                continue
            kind, ident = entries[idx - 1]
            result = session.act(ident) if kind == "act" else session.choose(ident)
            report(result)
        except AuthoringGapError as exc:
            print(f"[!] {exc}")
            return 1
        except InvalidTransitionError as exc:
            print(f"[!] {exc}")


if __name__ == "__main__":
    try:
        sys.exit(main())
    except (KeyboardInterrupt, EOFError):
        print("\n[Interrupted] Bye.")
