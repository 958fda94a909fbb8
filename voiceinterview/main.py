"""Main application entry point for the voice interview pipeline."""

import sys
import asyncio
import argparse
import logging
from pathlib import Path
from typing import Optional

from voiceinterview import __version__
from voiceinterview.analytics.engine import TranscriptAnalyticsEngine
from voiceinterview.audio.device import PyAudioDevice
from voiceinterview.errors.exceptions import SessionError, VoiceInterviewError
from voiceinterview.models.session import CallStatus, InterviewContext, Session
from voiceinterview.services.session_manager import SessionManager
from voiceinterview.storage.file_manager import FileManager
from voiceinterview.ui.report_view import ReportView

from .config import VoiceInterviewConfig

logger = logging.getLogger(__name__)


class Server:

    def __init__(self, config: VoiceInterviewConfig):
        self.config = config
        self.view = ReportView()
        self.audio_device: Optional[PyAudioDevice] = None
        self.session_manager: Optional[SessionManager] = None

    def init(self):
        logger.info("Initializing services...")
        settings = self.config.get_session_settings()
        if not settings.agent_url:
            raise ValueError("agent.url must be set in the configuration")

        logger.info(f"Audio settings: {settings.sample_rate}Hz, {settings.chunk_size} samples/chunk, "
                    f"{settings.channels} channels")
        self.audio_device = PyAudioDevice(
            sample_rate=settings.sample_rate,
            chunk_size=settings.chunk_size,
            channels=settings.channels
        )
        self.session_manager = SessionManager(self.config, self.audio_device)

    async def run(self, context: InterviewContext, duration: Optional[int]) -> None:
        session = self.session_manager.create_session(context)
        try:
            await session.start()
        except SessionError as e:
            self.view.show_error(f"Could not start interview: {e}")
            result = await session.wait_until_finished()
            await self.session_manager.complete_session(result, context)
            return

        print(f"Interview {session.session_id} started. Press Ctrl+C to finish.")
        end_reason = "finished"
        try:
            if duration:
                await asyncio.wait_for(session.wait_until_finished(), timeout=duration)
            else:
                await session.wait_until_finished()
        except asyncio.TimeoutError:
            logger.info(f"Interview duration of {duration}s reached")
            end_reason = "duration elapsed"
        except asyncio.CancelledError:
            # Ctrl+C cancels the main task; still persist and report
            logger.info("Interview interrupted by user")
            end_reason = "interrupted"
        result = await session.end_session(end_reason)

        feedback_id = await self.session_manager.complete_session(result, context)
        if result.report is not None:
            self.view.show_analytics(result.report)
        if result.terminal_error is not None:
            self.view.show_error(result.terminal_error.message)
        self.view.show_performance(result.performance)
        if feedback_id:
            print(f"Feedback requested: {feedback_id}")

    def cleanup(self):
        if self.audio_device is not None:
            self.audio_device.terminate()


def analyze_transcript_file(path: str, view: ReportView) -> None:
    """Run analytics over a saved transcript and print the report."""
    messages = FileManager.load_transcript_file(path)
    session_id = Path(path).parent.name or "offline"
    session = Session(id=session_id, status=CallStatus.FINISHED)
    report = TranscriptAnalyticsEngine().generate_report(messages, session, [])
    view.show_analytics(report)


def load_config(config_path: Optional[str], required: bool) -> VoiceInterviewConfig:
    try:
        return VoiceInterviewConfig(config_path)
    except FileNotFoundError:
        if required:
            raise
        return VoiceInterviewConfig.from_dict({})


def setup_logging(config: VoiceInterviewConfig, level: str = "INFO") -> None:
    """Set up logging configuration from YAML config."""
    log_file_path = config.get('logging.file_path', 'data/logs/voiceinterview.log')
    console_output = config.get('logging.console_output', True)

    log_dir = Path(log_file_path).parent
    log_dir.mkdir(parents=True, exist_ok=True)

    handlers = []

    # File handler - always write to file
    file_handler = logging.FileHandler(log_file_path)
    file_handler.setLevel(logging.DEBUG)
    file_formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(funcName)s:%(lineno)d - %(message)s'
    )
    file_handler.setFormatter(file_formatter)
    handlers.append(file_handler)

    if console_output:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(logging.WARNING)  # Only show warnings and above on console
        console_formatter = logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')
        console_handler.setFormatter(console_formatter)
        handlers.append(console_handler)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(getattr(logging, level.upper()))
    for handler in handlers:
        root_logger.addHandler(handler)

    logger = logging.getLogger(__name__)
    logger.info("="*50)
    logger.info("Voice interview pipeline starting up")
    logger.info(f"Log file: {log_file_path}")
    logger.info(f"Log level set to: {level}")
    logger.info("="*50)


def build_context(args: argparse.Namespace) -> InterviewContext:
    tech_stack = [t.strip() for t in (args.tech_stack or "").split(",") if t.strip()]
    return InterviewContext(
        candidate_name=args.candidate_name,
        role=args.role,
        experience_level=args.level,
        tech_stack=tech_stack,
        interview_type=args.interview_type,
        interview_duration_minutes=max(1, (args.duration or 1800) // 60),
    )


def main() -> None:
    """Main entry point for the voice interview CLI."""
    parser = argparse.ArgumentParser(
        description="Voice interview - real-time conversation with a remote interview agent",
        epilog="Press Ctrl+C during a live interview to finish it and print the report"
    )

    parser.add_argument(
        "--config",
        type=str,
        help="Path to configuration YAML file (default: looks for voiceinterview.yaml)"
    )

    parser.add_argument(
        "--log-level",
        type=str,
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Set logging level (default: logging.level from config, else INFO)"
    )

    parser.add_argument("--candidate-name", type=str, default="Candidate", help="Candidate name sent to the agent")
    parser.add_argument("--role", type=str, default="Software Engineer", help="Role being interviewed for")
    parser.add_argument("--level", type=str, default="Mid-level", help="Experience level")
    parser.add_argument("--tech-stack", type=str, help="Comma separated technologies, e.g. 'Python, React'")
    parser.add_argument("--interview-type", type=str, default="technical",
                        choices=["technical", "behavioral", "mixed"], help="Kind of interview")

    parser.add_argument(
        "--duration",
        type=int,
        help="End the live interview after this many seconds"
    )

    parser.add_argument(
        "--analyze",
        metavar="TRANSCRIPT_JSON",
        type=str,
        help="Analyze a saved transcript.json instead of running a live interview"
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"voiceinterview v{__version__}"
    )

    args = parser.parse_args()

    view = ReportView()
    server = None
    try:
        config = load_config(args.config, required=not args.analyze)
        setup_logging(config, args.log_level or config.get('logging.level', 'INFO'))

        if args.analyze:
            analyze_transcript_file(args.analyze, view)
            return

        server = Server(config)
        server.init()
        asyncio.run(server.run(build_context(args), args.duration))
    except KeyboardInterrupt:
        print("\nInterview interrupted.")
    except (VoiceInterviewError, ValueError, FileNotFoundError) as e:
        view.show_error(str(e))
        logging.error(f"Application error: {e}")
        sys.exit(1)
    finally:
        if server is not None:
            server.cleanup()


if __name__ == "__main__":
    main()
