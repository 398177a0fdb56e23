import argparse
import asyncio
import sys
from pathlib import Path

from facemesh_attendance.camera import CameraSessionManager, VideoSurface
from facemesh_attendance.camera_capture import CameraConstraints
from facemesh_attendance.config import (
    ATTENDANCE_COOLDOWN_SECONDS,
    CAMERA_INDEX,
    DB_PATH,
    DEFAULT_USER_ID,
    SIMILARITY_THRESHOLD,
)
from facemesh_attendance.database import AttendanceDatabase
from facemesh_attendance.detection import DetectionInvoker
from facemesh_attendance.exceptions import AttendanceError, ModelUnavailable
from facemesh_attendance.history_service import HistoryService
from facemesh_attendance.identity import StaticIdentityProvider
from facemesh_attendance.landmark_model import load_landmark_model
from facemesh_attendance.logger import setup_logger
from facemesh_attendance.notifications import LoggingNotifier, Notification, NotificationKind
from facemesh_attendance.similarity import SimilarityEngine
from facemesh_attendance.store import DatabaseRecordStore
from facemesh_attendance.verification import VerificationSession, VerificationState


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Face landmark attendance: register once, then record attendance from the webcam"
    )
    parser.add_argument("--db", type=Path, default=DB_PATH, help="SQLite database path")

    subparsers = parser.add_subparsers(dest="command", required=True)

    register = subparsers.add_parser("register", help="Capture and store the face descriptor for a user")
    register.add_argument("--user", default=DEFAULT_USER_ID, help="User ID")
    register.add_argument("--name", default="", help="Display name stored with the profile")
    register.add_argument("--camera", type=int, default=CAMERA_INDEX, help="Webcam index")

    monitor = subparsers.add_parser(
        "monitor",
        help="Register if needed, then record attendance whenever the user's face matches",
    )
    monitor.add_argument("--user", default=DEFAULT_USER_ID, help="User ID")
    monitor.add_argument("--name", default="", help="Display name used if registration is needed")
    monitor.add_argument("--camera", type=int, default=CAMERA_INDEX, help="Webcam index")
    monitor.add_argument(
        "--threshold",
        type=float,
        default=SIMILARITY_THRESHOLD,
        help="Cosine similarity threshold for a match",
    )
    monitor.add_argument(
        "--cooldown",
        type=float,
        default=ATTENDANCE_COOLDOWN_SECONDS,
        help="Minimum seconds between two recorded attendances",
    )
    monitor.add_argument(
        "--duration",
        type=float,
        default=0.0,
        help="Stop after N seconds (0 = run until interrupted)",
    )

    history = subparsers.add_parser("history", help="List a user's attendance records")
    history.add_argument("--user", default=DEFAULT_USER_ID, help="User ID")
    history.add_argument("--limit", type=int, default=50, help="Max rows to print")

    export = subparsers.add_parser("export-history", help="Export a user's attendance records to Excel")
    export.add_argument("--user", default=DEFAULT_USER_ID, help="User ID")
    export.add_argument("--output", type=Path, required=True, help="Destination .xlsx path")

    return parser


async def run_camera_flow(args: argparse.Namespace, register_only: bool) -> int:
    identity = StaticIdentityProvider(args.user)
    db = AttendanceDatabase(args.db)
    notifier = LoggingNotifier()

    try:
        model = await load_landmark_model()
    except ModelUnavailable as exc:
        notifier.notify(Notification(NotificationKind.ERROR, "Face model unavailable", str(exc)))
        raise

    session = VerificationSession(
        identity=identity,
        store=DatabaseRecordStore(db),
        camera=CameraSessionManager(surface=VideoSurface()),
        invoker=DetectionInvoker(model),
        notifier=notifier,
        similarity=SimilarityEngine(getattr(args, "threshold", SIMILARITY_THRESHOLD)),
        cooldown_seconds=getattr(args, "cooldown", ATTENDANCE_COOLDOWN_SECONDS),
    )

    try:
        state = await session.start()
        if register_only and state is VerificationState.MONITORING:
            print(f"User {args.user} is already registered.")
            return 0

        await session.open_camera(CameraConstraints(camera_index=args.camera))
        if state is VerificationState.REGISTERING:
            print("Look at the camera to register your face...")
            await session.register(args.name)
            print(f"Registration successful for {args.user}.")
        if register_only:
            return 0

        loop = session.start_monitoring()
        print("Monitoring attendance. Press Ctrl+C to stop.")
        if args.duration > 0:
            await asyncio.sleep(args.duration)
        else:
            await loop.wait()
        print("Monitoring stopped.")
        return 0
    finally:
        await session.close()
        model.close()


def main() -> int:
    parser = build_parser()
    args = parser.parse_args()
    logger = setup_logger("main")

    try:
        if args.command in {"register", "monitor"}:
            return asyncio.run(run_camera_flow(args, register_only=args.command == "register"))

        if args.command == "history":
            service = HistoryService(AttendanceDatabase(args.db))
            rows = service.rows(args.user, limit=args.limit)
            if not rows:
                print(f"No attendance records for {args.user}.")
                return 0

            print(f"{'Record':<8} {'Recorded At':<21} {'Name'}")
            print("-" * 52)
            for row in rows:
                print(f"{row.id:<8} {row.recorded_at:<21} {row.display_name}")
            return 0

        if args.command == "export-history":
            service = HistoryService(AttendanceDatabase(args.db))
            args.output.parent.mkdir(parents=True, exist_ok=True)
            args.output.write_bytes(service.excel(args.user))
            print(f"Exported attendance history to {args.output}")
            return 0

    except AttendanceError as exc:
        logger.error("Application error: %s", exc)
        print(f"Error: {exc}")
        return 1
    except KeyboardInterrupt:
        print("\nStopped by user.")
        return 1
    except Exception as exc:
        logger.exception("Unexpected failure")
        print(f"Unexpected error: {exc}")
        return 1

    parser.print_help()
    return 1


if __name__ == "__main__":
    sys.exit(main())
