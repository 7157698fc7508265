from __future__ import annotations

import unittest

from peakjob.actions import (
    Credentials,
    DeleteAction,
    InitAction,
    JobAttributes,
    JobStatus,
    PiVersionsAction,
    RunAction,
    SandboxAction,
    SftpAction,
    StatusAction,
)

CREDS = Credentials("joe", "secret", 504)
ATTRS = JobAttributes(min_mass=100, max_mass=2000, start_mass=100, end_mass=2000, max_points=14)


class _ExplodingService:
    def execute(self, action):
        raise AssertionError("sandboxed actions must not reach the service")


def _all_actions():
    return [
        PiVersionsAction(CREDS),
        InitAction(CREDS, "1.3", 10, ATTRS),
        SftpAction(CREDS),
        RunAction(CREDS, "P-1", "RTO-24", "P-1.scans.tar.gz"),
        StatusAction(CREDS, "P-1"),
        DeleteAction(CREDS, "P-1"),
    ]


class TestSandboxAction(unittest.TestCase):
    def test_build_query_identical(self):
        for plain, wrapped in zip(_all_actions(), _all_actions()):
            with self.subTest(action=plain.ACTION):
                self.assertEqual(plain.build_query(), SandboxAction(wrapped).build_query())

    def test_minimal_response_parses_without_error(self):
        for action in _all_actions():
            with self.subTest(action=action.ACTION):
                sandboxed = SandboxAction(action).perform(_ExplodingService())
                self.assertFalse(sandboxed.has_error(), sandboxed.error_message)
                self.assertTrue(action.processed)

    def test_forced_status(self):
        for label, expected in (("Running", JobStatus.RUNNING), ("Deleted", JobStatus.DELETED)):
            with self.subTest(label=label):
                action = SandboxAction(StatusAction(CREDS, "P-1"), label).perform(_ExplodingService())
                self.assertIs(expected, action.status)

    def test_forced_done_carries_result_files(self):
        action = SandboxAction(StatusAction(CREDS, "P-7"), "Done").perform(_ExplodingService())
        self.assertIs(JobStatus.DONE, action.status)
        self.assertEqual("/files/P-7/P-7.mass_list.tar.gz", action.results_file)
        self.assertTrue(action.log_file.endswith("P-7.log.txt"))

    def test_forced_invalid_status_goes_through_error_channel(self):
        action = SandboxAction(StatusAction(CREDS, "P-1"), "Bogus").perform(_ExplodingService())
        self.assertTrue(action.has_error())

    def test_forced_version_is_offered(self):
        action = SandboxAction(PiVersionsAction(CREDS), "2.0").perform()
        self.assertEqual("2.0", action.current_version)
        self.assertIn("2.0", action.versions)

    def test_default_status_is_running(self):
        action = SandboxAction(StatusAction(CREDS, "P-1")).perform()
        self.assertIs(JobStatus.RUNNING, action.status)

    def test_accessors_delegate(self):
        inner = InitAction(CREDS, "1.3", 10, ATTRS)
        wrapped = SandboxAction(inner).perform()
        self.assertIs(inner, wrapped.wrapped)
        self.assertEqual("INIT", wrapped.ACTION)
        self.assertEqual(inner.job, wrapped.job)
        self.assertEqual(["RTO-24", "RTO-0"], wrapped.estimated_costs.rtos)
