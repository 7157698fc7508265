from __future__ import annotations

import tempfile
import unittest
from datetime import datetime, timezone
from pathlib import Path

import pytest

from peakjob.archive import ArchiveWriter
from peakjob.batch import Batch
from peakjob.constants import META_JOB, META_VERSION
from peakjob.errors import ServiceError, ValidationError
from peakjob.orchestrator import JobOrchestrator
from peakjob.settings import Settings
from peakjob.workflow import fetch
from peakjob.workflow.types import Mode, RunOutcome

from tests.fakes import FakeService, RecordingLogger, sftp_response, status_response

JOB = "P-504.1463"
RESULTS_REMOTE = f"/files/{JOB}/{JOB}.mass_list.tar.gz"
LOG_REMOTE = f"/files/{JOB}/{JOB}.log.txt"
DELETED = {"Action": "DELETE", "Job": JOB, "Datetime": "2016-02-03 18:35:06"}


def _submitted_batch(count=3):
    batch = Batch.from_points([[] for _ in range(count)])
    batch.set_meta(META_JOB, JOB)
    batch.set_meta(META_VERSION, "1.3")
    return batch


@pytest.mark.scenario
class TestFetch(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.tmp = Path(self._tmp.name)
        self.logger = RecordingLogger()
        self.sleeps = []
        self.settings = Settings(
            username="joe",
            password="pw",
            project=504,
            server="pi.example.com",
            log_dir=str(self.tmp / "logs"),
        )
        self.results = self.tmp / "fixture.mass_list.tar.gz"
        with ArchiveWriter(self.results) as writer:
            writer.write_entry(f"{JOB}/record00002.mass_list.txt", b"# m i dm di\n300.5 30 0.003 3\n")
            writer.write_entry(f"{JOB}/record00000.mass_list.txt", b"100.5 10 0.001 1\n101.5 11 0.001 1\n")
        self.log = self.tmp / "fixture.log.txt"
        self.log.write_text("job log\n", encoding="utf-8")

    def tearDown(self):
        self._tmp.cleanup()

    def _service(self, statuses, delete=DELETED):
        return FakeService(
            {
                "STATUS": [status_response(s, JOB) for s in statuses],
                "SFTP": sftp_response(),
                "DELETE": delete,
            },
            files={RESULTS_REMOTE: self.results, LOG_REMOTE: self.log},
        )

    def _orchestrator(self, batch, service, mode=Mode.FETCH):
        return JobOrchestrator(
            mode,
            self.settings,
            batch,
            service,
            logger=self.logger,
            work_dir=self.tmp / "work",
            sleep_fn=self.sleeps.append,
        )

    def test_still_running_downloads_nothing(self):
        batch = _submitted_batch()
        service = self._service(["Running"])

        outcome = self._orchestrator(batch, service).run()

        self.assertIs(RunOutcome.STILL_RUNNING, outcome)
        self.assertEqual(["STATUS"], service.actions())
        self.assertEqual([], service.downloads)
        self.assertEqual(JOB, batch.get_meta(META_JOB))
        self.assertEqual([], self.sleeps)

    def test_deleted_remotely(self):
        batch = _submitted_batch()
        service = self._service(["Deleted"])
        self.assertIs(RunOutcome.DELETED_REMOTELY, self._orchestrator(batch, service).run())
        self.assertEqual([], service.downloads)

    def test_happy_path(self):
        batch = _submitted_batch()
        service = self._service(["Done"])

        orchestrator = self._orchestrator(batch, service)
        outcome = orchestrator.run()

        self.assertIs(RunOutcome.RESULTS_DOWNLOADED, outcome)
        self.assertEqual([RESULTS_REMOTE, LOG_REMOTE], service.downloads)
        self.assertEqual(["STATUS", "SFTP", "DELETE"], service.actions())
        self.assertEqual(1, len(service.actions("DELETE")))

        self.assertEqual([(100.5, 10.0), (101.5, 11.0)], batch[0].points)
        self.assertEqual([(0.001, 1.0), (0.001, 1.0)], batch[0].uncertainties)
        self.assertEqual([], batch[1].points)
        self.assertEqual([(300.5, 30.0)], batch[2].points)
        self.assertTrue(batch[0].centroided)
        self.assertFalse(batch[1].centroided)

        processing = batch[2].processing[0]
        self.assertEqual("peak_picking", processing["action"])
        self.assertEqual("1.3", processing["version"])
        self.assertEqual(JOB, processing["job"])
        self.assertEqual("pi.example.com", processing["server"])
        self.assertEqual("PeakInvestigator", processing["software"])

        self.assertIsNone(batch.get_meta(META_JOB))
        self.assertIsNone(batch.get_meta(META_VERSION))
        self.assertTrue((self.tmp / "logs" / f"{JOB}.log.txt").is_file())
        self.assertTrue(orchestrator.modified)
        self.assertIn("1 records received no results", self.logger.warnings)

    def test_delete_failure_after_merge(self):
        batch = _submitted_batch()
        service = self._service(["Done"], delete={"Action": "DELETE", "Error": 4, "Message": "Unknown job"})
        orchestrator = self._orchestrator(batch, service)

        with self.assertRaises(ServiceError) as ctx:
            orchestrator.run()

        self.assertEqual("DELETE", ctx.exception.operation)
        self.assertTrue(orchestrator.modified)
        self.assertEqual([(300.5, 30.0)], batch[2].points)

    def test_result_for_unknown_record(self):
        batch = _submitted_batch(count=1)
        service = self._service(["Done"])
        with self.assertRaises(ValidationError):
            self._orchestrator(batch, service).run()
        self.assertEqual([], service.actions("DELETE"))
        self.assertEqual(JOB, batch.get_meta(META_JOB))

    def test_missing_job_metadata(self):
        service = self._service(["Done"])
        with self.assertRaises(ValidationError):
            self._orchestrator(Batch.from_points([[]]), service).run()
        self.assertEqual([], service.calls)

    def test_polling_until_done(self):
        self.settings.poll_attempts = 5
        self.settings.poll_interval = 10
        service = self._service(["Preparing", "Running", "Done"])

        outcome = self._orchestrator(_submitted_batch(), service).run()

        self.assertIs(RunOutcome.RESULTS_DOWNLOADED, outcome)
        self.assertEqual([10.0, 20.0], self.sleeps)
        self.assertEqual(3, len(service.actions("STATUS")))

    def test_polling_exhausted(self):
        self.settings.poll_attempts = 4
        self.settings.poll_interval = 100
        self.settings.poll_max_interval = 250
        service = self._service(["Running"])

        outcome = self._orchestrator(_submitted_batch(), service).run()

        self.assertIs(RunOutcome.STILL_PENDING, outcome)
        self.assertEqual([100.0, 200.0, 250.0], self.sleeps)
        self.assertEqual(4, len(service.actions("STATUS")))
        self.assertEqual([], service.downloads)

    def test_sandbox_forced_done(self):
        self.settings.sandbox = "Done"
        batch = _submitted_batch()
        service = self._service([])

        orchestrator = self._orchestrator(batch, service)
        outcome = orchestrator.run()

        self.assertIs(RunOutcome.RESULTS_DOWNLOADED, outcome)
        self.assertEqual([], service.calls)
        self.assertEqual([], service.downloads)
        self.assertEqual([RESULTS_REMOTE, LOG_REMOTE], orchestrator.transfers.downloads)
        self.assertTrue((self.tmp / "logs" / f"{JOB}.log.txt").is_file())
        self.assertTrue(any("3 records received no results" in w for w in self.logger.warnings))


class TestCheckAndDelete(unittest.TestCase):
    def setUp(self):
        self.logger = RecordingLogger()
        self.settings = Settings(username="joe", password="pw", project=504)

    def _run(self, mode, batch, service):
        orchestrator = JobOrchestrator(mode, self.settings, batch, service, logger=self.logger)
        return orchestrator, orchestrator.run()

    def test_check_reports_without_downloading(self):
        service = FakeService({"STATUS": status_response("Done", JOB)})
        batch = _submitted_batch()

        _, outcome = self._run(Mode.CHECK, batch, service)

        self.assertIs(RunOutcome.STATUS_REPORTED, outcome)
        self.assertEqual(["STATUS"], service.actions())
        title, rows, ok = self.logger.summaries[0]
        self.assertIn(("Status", "Done"), rows)
        self.assertTrue(ok)
        self.assertEqual(JOB, batch.get_meta(META_JOB))

    def test_delete_clears_metadata(self):
        service = FakeService({"DELETE": DELETED})
        batch = _submitted_batch()

        orchestrator, outcome = self._run(Mode.DELETE, batch, service)

        self.assertIs(RunOutcome.JOB_DELETED, outcome)
        self.assertEqual([{"Version": "4.0", "User": "joe", "Code": "pw", "Action": "DELETE", "Job": JOB}], service.params("DELETE"))
        self.assertIsNone(batch.get_meta(META_JOB))
        self.assertTrue(orchestrator.modified)


class TestCompletionMetadata(unittest.TestCase):
    def test_fields(self):
        now = datetime(2026, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
        meta = fetch.completion_metadata(version="1.3", server="s", job="P-1", now=now)
        self.assertEqual("2026-01-02T03:04:05+00:00", meta["completed"])
        self.assertEqual(
            {"action", "completed", "software", "version", "server", "job"},
            set(meta),
        )
