#!/usr/bin/env python3
"""
Main entry point for the JobDance interview coach.
Allows running the package with: python -m jobdance
"""
import sys
import asyncio
import threading

from .config import get_config
from .infrastructure.data import SessionStore, ProfileStore
from .interview import (
    InterviewTurnController, ConsolePresenter, InterviewMetrics, EndOutcome, create_event_bus,
)
from .interview.presenter import PERMANENT_REPORT_VIEW
from .utils import setup_logging

COMMANDS_HELP = "   (Commands: /end to finish, /mic to listen again, /stop to submit what was heard, /mute to toggle audio)"


def _read_stdin(loop: asyncio.AbstractEventLoop, lines: asyncio.Queue) -> None:
    """Forward typed lines to the event loop. None marks end of input."""
    for line in sys.stdin:
        loop.call_soon_threadsafe(lines.put_nowait, line.rstrip("\n"))
    loop.call_soon_threadsafe(lines.put_nowait, None)


async def run_interview(config, use_tts: bool, voice_input: bool, profile) -> None:
    metrics = InterviewMetrics()
    controller = InterviewTurnController.from_config(
        config,
        presenter=ConsolePresenter(),
        profile=profile,
        voice_mode=voice_input,
        audio_enabled=use_tts,
        event_bus=create_event_bus(metrics),
    )

    loop = asyncio.get_running_loop()
    lines: asyncio.Queue = asyncio.Queue()
    threading.Thread(target=_read_stdin, args=(loop, lines), daemon=True).start()

    print(f"\n🎙️  Starting interview - {config.max_questions} questions")
    print(f"📝 Detailed logs: {config.log_file}")
    print("=" * 50)

    await controller.start_interview()
    ended = asyncio.ensure_future(controller.wait_until_ended())

    while not ended.done():
        next_line = asyncio.ensure_future(lines.get())
        await asyncio.wait({next_line, ended}, return_when=asyncio.FIRST_COMPLETED)
        if not next_line.done():
            next_line.cancel()
            break

        line = next_line.result()
        command = (line or "").strip().lower()
        if line is None or command == "/end":
            print("🛑 Ending interview...")
            await controller.end_interview()
            break
        if command == "/mic":
            controller.start_voice_input()
        elif command == "/stop":
            await controller.stop_voice_input()
        elif command == "/mute":
            controller.set_audio_enabled(not controller.audio_enabled)
            print("🔇 Audio off" if not controller.audio_enabled else "🔊 Audio on")
        elif command:
            if not await controller.submit_answer(line):
                print("⏳ Please wait for the next question.")

    outcome = await ended
    if outcome == EndOutcome.SAVED_WITHOUT_REPORT:
        print("⏳ Waiting for the report to finish...")
    await controller.drain()

    print(f"🏁 Outcome: {outcome.value if outcome else 'none'}")
    print(f"📈 Session metrics: {metrics.get_metrics()}")


def list_sessions(store: SessionStore) -> None:
    records = store.list_sessions()
    if not records:
        print("📭 No saved interviews yet")
        return
    for record in records:
        score = "pending"
        if record.report:
            score = f"{record.report.get('overallPerformance', {}).get('score', 0)}/100"
        print(f"📁 {record.session_id}  {record.created_at[:19]}  "
              f"{record.question_count} answers  score: {score}")


def show_session(store: SessionStore, session_id: str) -> None:
    try:
        record = store.load_session(session_id)
    except ValueError as e:
        print(f"❌ {e}")
        sys.exit(1)
    if record is None:
        print(f"❌ No saved interview {session_id}")
        sys.exit(1)

    print(f"\n📁 {record.session_id} ({record.duration_seconds}s)")
    for message in record.messages:
        prefix = "🤖" if message.get("role") == "assistant" else "👤"
        print(f"{prefix} {message.get('content', '')}")
    ConsolePresenter().navigate(PERMANENT_REPORT_VIEW.format(session_id=record.session_id),
                                report=record.report)


def main():
    """Command-line interface for the interview coach."""

    # Load configuration from environment
    try:
        config = get_config()
    except ValueError as e:
        print(f"❌ Configuration Error: {e}")
        sys.exit(1)

    # TTS configuration with explicit flags taking precedence
    explicit_tts = "--tts" in sys.argv
    explicit_text = "--text" in sys.argv or "--no-tts" in sys.argv

    if explicit_text:
        use_tts = False
    elif explicit_tts:
        use_tts = True
    else:
        use_tts = config.enable_tts  # Use config default

    if "--typed" in sys.argv:
        voice_input = False
    elif "--voice-input" in sys.argv:
        voice_input = True
    else:
        voice_input = config.enable_voice_input

    for arg in sys.argv:
        if arg.startswith("--max-questions="):
            try:
                config.max_questions = int(arg.split("=", 1)[1])
            except (ValueError, IndexError):
                print("❌ Invalid question count. Use --max-questions=5")
                sys.exit(1)
            if config.max_questions < 1:
                print("❌ --max-questions must be at least 1")
                sys.exit(1)
        elif arg.startswith("--profile="):
            config.profile_path = arg.split("=", 1)[1]
        elif arg == "--validate-answers":
            config.validate_answers = True

    setup_logging(config.log_file, config.log_level)
    store = SessionStore(config.sessions_dir)

    if "--list-sessions" in sys.argv:
        list_sessions(store)
        return
    for arg in sys.argv:
        if arg.startswith("--show-session="):
            show_session(store, arg.split("=", 1)[1])
            return

    profile = ProfileStore(config.profile_path).load()

    # Show configuration
    if use_tts:
        print("🔊 TTS Mode: Interviewer will speak questions aloud (default)")
        print("   (Use --text or --no-tts to disable speech)")
    else:
        print("📝 Text Mode: Questions will be displayed as text only")
    if voice_input:
        print("🎤 Voice answers: stop talking for a few seconds to submit")
        print("   (Use --typed to answer with the keyboard)")
    else:
        print("⌨️  Typed answers")
    if profile is None:
        print("👤 No profile loaded, using general questions (use --profile=PATH)")
    else:
        print(f"👤 Profile: {profile.full_name or 'unnamed candidate'}")
    print(COMMANDS_HELP)

    try:
        asyncio.run(run_interview(config, use_tts, voice_input, profile))
    except KeyboardInterrupt:
        print("\n🛑 Interview interrupted")


if __name__ == "__main__":
    main()
