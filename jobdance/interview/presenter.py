"""
User-facing surface of the interview loop.

The controller never prints or navigates on its own; it calls a
presenter. ConsolePresenter is the terminal front end used by the CLI.
"""
import logging
from typing import Any, Dict, Optional

logger = logging.getLogger("presenter")

PERMANENT_REPORT_VIEW = "/interview/report/{session_id}"
TEMPORARY_REPORT_VIEW = "/interview/report/temp"

TEMPORARY_REPORT_WARNING = (
    "Your interview could not be saved. This report is only available "
    "until you close the app and may not be saved."
)


class InterviewPresenter:
    """Hooks the controller calls. The base class ignores everything."""

    def show_question(self, text: str) -> None:
        pass

    def show_interim(self, text: str) -> None:
        pass

    def show_feedback(self, text: str) -> None:
        pass

    def alert(self, message: str) -> None:
        pass

    def prompt_for_text(self) -> None:
        pass

    def navigate(self,
                 route: str,
                 report: Optional[Dict[str, Any]] = None,
                 payload: Optional[Dict[str, Any]] = None,
                 warning: Optional[str] = None) -> None:
        pass


class ConsolePresenter(InterviewPresenter):
    """Prints the interview to the terminal."""

    def __init__(self, show_interim: bool = True):
        self._show_interim = show_interim
        self.route: Optional[str] = None

    def show_question(self, text: str) -> None:
        print(f"\n🤖 Interviewer: {text}")

    def show_interim(self, text: str) -> None:
        if self._show_interim:
            print(f"\r🎤 {text}", end="", flush=True)

    def show_feedback(self, text: str) -> None:
        print(f"\n💡 {text}")

    def alert(self, message: str) -> None:
        print(f"\n❌ {message}")

    def prompt_for_text(self) -> None:
        print("⌨️  Type your answer and press Enter (/end to finish):")

    def navigate(self, route, report=None, payload=None, warning=None) -> None:
        self.route = route
        logger.info("Navigating to %s", route)

        print("\n" + "=" * 50)
        if warning:
            print(f"⚠️  {warning}")
        if report is None:
            print("📊 Your report is still being generated.")
            print(f"📁 Session saved: {route}")
            print("=" * 50)
            return

        print("🎯 INTERVIEW REPORT")
        print("=" * 50)
        overall = report.get("overallPerformance", {})
        print(f"🔢 Overall Score: {overall.get('score', 0)}/100")
        if overall.get("summary"):
            print(f"📝 {overall['summary']}")

        for key, label in (("technicalKnowledge", "Technical knowledge"),
                           ("confidenceLevel", "Confidence"),
                           ("jobSuitability", "Job suitability"),
                           ("hiringLikelihood", "Hiring likelihood")):
            section = report.get(key) or {}
            print(f"   {label}: {section.get('score', 0)}/100")

        strengths = overall.get("strengths") or []
        if strengths:
            print("💪 Strengths:")
            for item in strengths:
                print(f"   - {item}")

        improvements = report.get("improvements") or []
        if improvements:
            print("📈 To improve:")
            for item in improvements:
                if isinstance(item, dict):
                    print(f"   - [{item.get('category', 'General')}] {item.get('suggestion', '')}")
                else:
                    print(f"   - {item}")

        print(f"📁 Report: {route}")
        print("=" * 50)
