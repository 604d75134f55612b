import os
import tempfile
import unittest
from pathlib import Path

from fakes import FakeApplier, FakeClock, FakeSession, ScriptedCapturer, StopLoop


def make_attempt(output_dir, capturer, applier=None, clock=None, config=None):
    from config import CaptureConfig
    from service import RetryingAttempt

    config = config or CaptureConfig(width=3440, height=1440, interval=600.0)
    return RetryingAttempt(
        config,
        Path(output_dir),
        session_factory=FakeSession,
        capturer=capturer,
        applier=applier or FakeApplier(),
        clock=clock or FakeClock(),
    )


class RetryingAttemptTest(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        FakeSession.instances = []
        self._tmp = tempfile.TemporaryDirectory()
        self.output_dir = self._tmp.name

    def tearDown(self):
        self._tmp.cleanup()

    async def test_success_writes_exactly_one_file_and_applies_it(self):
        applier = FakeApplier()
        attempt = make_attempt(self.output_dir, ScriptedCapturer([]), applier=applier)

        result = await attempt.run_once()

        self.assertTrue(result.succeeded)
        self.assertEqual(["status_20261016_090000.png"], os.listdir(self.output_dir))
        self.assertEqual(b"PNGDATA", result.path.read_bytes())
        self.assertEqual([result.path], applier.applied)
        self.assertEqual(1, len(result.attempts))

    async def test_recovers_on_third_attempt_after_backoff(self):
        from errors import CaptureError, NavigationError

        clock = FakeClock()
        capturer = ScriptedCapturer([NavigationError("never ready"), CaptureError("renderer crashed")])
        attempt = make_attempt(self.output_dir, capturer, clock=clock)

        result = await attempt.run_once()

        self.assertTrue(result.succeeded)
        self.assertEqual(3, capturer.calls)
        self.assertEqual([30.0, 30.0], clock.sleeps)
        self.assertEqual([1, 2, 3], [a.number for a in result.attempts])
        self.assertEqual(["status_20261016_090100.png"], os.listdir(self.output_dir))

    async def test_every_attempt_gets_a_fresh_session_that_is_released(self):
        from errors import CaptureError

        capturer = ScriptedCapturer([CaptureError("one"), CaptureError("two")])
        attempt = make_attempt(self.output_dir, capturer)

        await attempt.run_once()

        self.assertEqual(3, len(FakeSession.instances))
        for session in FakeSession.instances:
            self.assertTrue(session.entered)
            self.assertTrue(session.exited)

    async def test_exhausted_retries_return_last_error_and_write_nothing(self):
        from errors import CaptureError, SessionError

        last = CaptureError("third failure")
        capturer = ScriptedCapturer([SessionError("first"), CaptureError("second"), last])
        applier = FakeApplier()
        attempt = make_attempt(self.output_dir, capturer, applier=applier)

        result = await attempt.run_once()

        self.assertFalse(result.succeeded)
        self.assertIs(last, result.error)
        self.assertIsNone(result.path)
        self.assertEqual(3, capturer.calls)
        self.assertEqual([], os.listdir(self.output_dir))
        self.assertEqual([], applier.applied)

    async def test_apply_failure_keeps_written_artifact(self):
        from errors import ApplyError

        applier = FakeApplier(error=ApplyError("osascript exited with status 1", "execution error"))
        attempt = make_attempt(self.output_dir, ScriptedCapturer([]), applier=applier)

        result = await attempt.run_once()

        self.assertFalse(result.succeeded)
        self.assertIsInstance(result.error, ApplyError)
        self.assertEqual(3, len(applier.applied))
        files = sorted(os.listdir(self.output_dir))
        self.assertEqual(3, len(files))
        for name in files:
            with open(os.path.join(self.output_dir, name), "rb") as handle:
                self.assertEqual(b"PNGDATA", handle.read())

    async def test_existing_artifact_is_never_overwritten(self):
        from errors import PersistError

        existing = Path(self.output_dir) / "status_20261016_090000.png"
        existing.write_bytes(b"older")
        attempt = make_attempt(self.output_dir, ScriptedCapturer([]))
        attempt.max_retries = 1

        result = await attempt.run_once()

        self.assertFalse(result.succeeded)
        self.assertIsInstance(result.error, PersistError)
        self.assertEqual(b"older", existing.read_bytes())

    async def test_end_to_end_with_stub_engine(self):
        from config import CaptureConfig
        from render import Capturer

        config = CaptureConfig(width=3440, height=1440, interval=600.0, watermark_text="status.example")
        clock = FakeClock()
        applier = FakeApplier()
        capturer = Capturer(config, clock=clock, verify_image=False)
        attempt = make_attempt(self.output_dir, capturer, applier=applier, clock=clock, config=config)

        result = await attempt.run_once()

        self.assertTrue(result.succeeded)
        files = os.listdir(self.output_dir)
        self.assertEqual(1, len(files))
        self.assertRegex(files[0], r"^status_\d{8}_\d{6}\.png$")
        self.assertEqual(b"PNGDATA", (Path(self.output_dir) / files[0]).read_bytes())
        self.assertEqual([Path(self.output_dir) / files[0]], applier.applied)
        self.assertEqual([5.0, 0.5], clock.sleeps)


class SchedulerLoopTest(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.output_dir = self._tmp.name

    def tearDown(self):
        self._tmp.cleanup()

    async def test_cycles_one_second_apart_produce_distinct_files(self):
        from config import CaptureConfig
        from service import SchedulerLoop

        config = CaptureConfig(width=800, height=600, interval=1.0)
        clock = FakeClock(stop_after_sleeps=2)
        attempt = make_attempt(self.output_dir, ScriptedCapturer([]), clock=clock, config=config)
        loop = SchedulerLoop(config, attempt, clock=clock)

        with self.assertRaises(StopLoop):
            await loop.run()

        self.assertEqual(
            ["status_20261016_090000.png", "status_20261016_090001.png"],
            sorted(os.listdir(self.output_dir)),
        )
        self.assertEqual([1.0, 1.0], clock.sleeps)

    async def test_loop_keeps_going_after_a_failed_cycle(self):
        from config import CaptureConfig
        from errors import CaptureError
        from service import SchedulerLoop

        config = CaptureConfig(width=800, height=600, interval=600.0)
        clock = FakeClock(stop_after_sleeps=4)
        capturer = ScriptedCapturer([CaptureError("down")] * 10)
        attempt = make_attempt(self.output_dir, capturer, clock=clock, config=config)
        loop = SchedulerLoop(config, attempt, clock=clock)

        with self.assertLogs("service", level="ERROR") as logs:
            with self.assertRaises(StopLoop):
                await loop.run()

        self.assertEqual([30.0, 30.0, 600.0, 30.0], clock.sleeps)
        self.assertEqual(4, capturer.calls)
        self.assertIn("All screenshot attempts failed: down", logs.output[0])


class WriteArtifactTest(unittest.TestCase):
    def test_failed_write_raises_persist_error(self):
        from errors import PersistError
        from service import write_artifact

        with tempfile.TemporaryDirectory() as temp_dir:
            missing = Path(temp_dir) / "gone" / "status_20261016_090000.png"
            with self.assertRaises(PersistError):
                write_artifact(missing, b"PNGDATA")
            self.assertFalse(missing.exists())


if __name__ == "__main__":
    unittest.main()
