"""
orchestrator.py: JobOrchestrator: one ``run()`` per submit/fetch/check/delete.

The orchestrator is the only component that talks to the selection
collaborators. Every action goes through ``_perform`` which applies the
sandbox wrapper when configured and converts the action's error channel
into ServiceError, so stages never see a failed action.
"""

from __future__ import annotations

import tempfile
import time
from pathlib import Path
from typing import Callable, Optional

from .actions import Credentials, SandboxAction
from .constants import META_VERSION
from .errors import PeakJobError, ServiceError, UserCancelled, ValidationError
from .progress import NullProgress
from .selectors import ConsoleCredentialPrompt, ConsoleQuoteSelector, ConsoleVersionSelector
from .settings import Settings
from .transfers.sandbox import SandboxTransfers
from .utils.job_logger import JobLogger
from .utils.worker_utils import user_data_dir
from .workflow import fetch, submit
from .workflow.types import Mode, RunOutcome, SessionContext

# Actions that receive the configured forced sandbox value.
FORCED_SANDBOX_ACTIONS = ("STATUS",)


class JobOrchestrator:
    def __init__(
        self,
        mode: Mode,
        settings: Settings,
        batch,
        service,
        *,
        calibration=None,
        version_selector=None,
        quote_selector=None,
        credential_prompt=None,
        logger=None,
        progress=None,
        work_dir: Optional[Path] = None,
        sleep_fn: Callable[[float], None] = time.sleep,
        strict: bool = True,
    ):
        self.mode = Mode(mode)
        self.settings = settings
        self.batch = batch
        self.calibration = calibration
        self.service = service
        self.logger = logger or JobLogger(debug=settings.debug)
        self.progress = progress or NullProgress()
        self.version_selector = version_selector or ConsoleVersionSelector()
        self.quote_selector = quote_selector or ConsoleQuoteSelector()
        self.credential_prompt = credential_prompt or ConsoleCredentialPrompt(settings.username)
        self.work_dir = Path(work_dir) if work_dir else None
        self.sleep_fn = sleep_fn
        self.strict = strict

        self.context: Optional[SessionContext] = None
        self._sandbox_transfers: Optional[SandboxTransfers] = None
        self.modified = False
        self._credentials: Optional[Credentials] = None

    # ─────────────────────── session ───────────────────────

    def credentials(self) -> Credentials:
        if self._credentials is not None:
            return self._credentials
        if not self.settings.username:
            raise ValidationError("No username configured")
        password = self.settings.password
        if not password:
            password = self.credential_prompt.ask_password()
            if not password:
                raise UserCancelled("No password entered")
        self._credentials = Credentials(self.settings.username, password, int(self.settings.project))
        return self._credentials

    def forget_credentials(self) -> None:
        """Drop the cached password so the next run() asks again."""
        self._credentials = None
        self.settings.password = ""

    def _perform(self, action):
        if self.settings.sandboxed:
            forced = self.settings.sandbox_forced if action.ACTION in FORCED_SANDBOX_ACTIONS else None
            action = SandboxAction(action, forced)
            self.logger.debug(f"Sandbox {action.ACTION}: {action.redacted_query()}")
        action.perform(self.service)
        if action.has_error():
            raise ServiceError.from_action(action)
        return action

    @property
    def transfers(self):
        """Bulk file transport: the service, or a local stand-in when sandboxed."""
        if not self.settings.sandboxed:
            return self.service
        if self._sandbox_transfers is None:
            self._sandbox_transfers = SandboxTransfers(self.logger)
        return self._sandbox_transfers

    def _log_dir(self) -> Path:
        path = Path(self.settings.log_dir).expanduser() if self.settings.log_dir else user_data_dir() / "logs"
        path.mkdir(parents=True, exist_ok=True)
        return path

    # ─────────────────────── entry point ───────────────────────

    def run(self) -> RunOutcome:
        runners = {
            Mode.SUBMIT: self._run_submit,
            Mode.FETCH: self._run_fetch,
            Mode.CHECK: self._run_check,
            Mode.DELETE: self._run_delete,
        }
        try:
            self.context = SessionContext(credentials=self.credentials())
            if self.work_dir is not None:
                self.work_dir.mkdir(parents=True, exist_ok=True)
                return runners[self.mode](self.work_dir)
            with tempfile.TemporaryDirectory(prefix="peakjob_") as tmp:
                return runners[self.mode](Path(tmp))
        except UserCancelled as exc:
            self.logger.warning(f"Cancelled: {exc.message}")
            return RunOutcome.CANCELLED
        except PeakJobError as exc:
            self.logger.error(str(exc))
            raise

    def _stop(self, flow) -> RunOutcome:
        if flow.outcome is RunOutcome.CANCELLED:
            self.logger.warning(f"Cancelled: {flow.reason}")
        else:
            self.logger.info(flow.reason)
        return flow.outcome

    # ─────────────────────── submit ───────────────────────

    def _run_submit(self, work_dir: Path) -> RunOutcome:
        ctx = self.context
        log = self.logger

        log.stage("Validate")
        submit.validate_batch(batch=self.batch)
        if self.calibration is not None:
            submit.validate_batch(batch=self.calibration, label="calibration batch")
        log.success(f"{len(self.batch)} records ready")

        log.stage("Version")
        chosen = submit.resolve_version(
            credentials=ctx.credentials,
            perform=self._perform,
            preference=self.settings.version,
            selector=self.version_selector,
            logger=log,
            remembered=self.settings.last_version,
        )
        if chosen.flow.should_stop:
            return self._stop(chosen.flow)
        ctx.version = chosen.version

        log.stage("Initialize")
        init = submit.initialize_job(
            credentials=ctx.credentials,
            perform=self._perform,
            batch=self.batch,
            version=ctx.version,
            mass_range=self.settings.parsed_mass_range(),
            logger=log,
            calibration=self.calibration,
        )
        ctx.job, ctx.funds, ctx.costs, ctx.attributes = init.job, init.funds, init.costs, init.attributes

        quote = submit.resolve_rto(
            costs=ctx.costs,
            funds=ctx.funds,
            preference=self.settings.rto,
            selector=self.quote_selector,
            logger=log,
        )
        if quote.flow.should_stop:
            return self._stop(quote.flow)
        ctx.rto = quote.rto

        log.stage("Upload")
        upload = submit.upload_batches(
            credentials=ctx.credentials,
            perform=self._perform,
            service=self.transfers,
            job=ctx.job,
            batch=self.batch,
            work_dir=work_dir,
            logger=log,
            progress=self.progress,
            calibration=self.calibration,
        )
        ctx.transfer = upload.transfer
        ctx.input_file = upload.input_file
        ctx.calibration_file = upload.calibration_file

        log.stage("Run")
        submit.start_job(
            credentials=ctx.credentials,
            perform=self._perform,
            batch=self.batch,
            job=ctx.job,
            version=ctx.version,
            rto=ctx.rto,
            upload=upload,
            logger=log,
        )
        self.modified = True
        self.settings.last_version = ctx.version

        log.summary(
            "Job submitted",
            [
                ("Job", ctx.job),
                ("Version", ctx.version),
                ("RTO", ctx.rto),
                ("Records", upload.entry_count),
                ("Estimated max cost", f"{ctx.costs.max_cost(ctx.rto):.2f}"),
            ],
        )
        return RunOutcome.SUBMITTED

    # ─────────────────────── fetch ───────────────────────

    def _run_fetch(self, work_dir: Path) -> RunOutcome:
        ctx = self.context
        log = self.logger

        log.stage("Status")
        ctx.job = fetch.resolve_job(batch=self.batch)
        ctx.version = str(self.batch.get_meta(META_VERSION) or "")
        checked = fetch.check_status(
            credentials=ctx.credentials,
            perform=self._perform,
            job=ctx.job,
            logger=log,
            sleep_fn=self.sleep_fn,
            attempts=self.settings.poll_attempts,
            interval=self.settings.poll_interval,
            max_interval=self.settings.poll_max_interval,
        )
        ctx.status = checked.status
        if checked.flow.should_stop:
            return self._stop(checked.flow)

        log.stage("Download")
        downloaded = fetch.download_results(
            credentials=ctx.credentials,
            perform=self._perform,
            service=self.transfers,
            status_action=checked.action,
            work_dir=work_dir,
            log_dir=self._log_dir(),
            logger=log,
            progress=self.progress,
        )

        log.stage("Merge")
        merged = fetch.merge_results(
            batch=self.batch,
            results_path=downloaded.results_path,
            processing=fetch.completion_metadata(
                version=ctx.version,
                server=self.settings.server,
                job=ctx.job,
            ),
            logger=log,
            strict=self.strict,
        )
        self.modified = True
        fetch.clear_job_metadata(batch=self.batch)

        log.stage("Clean up")
        fetch.delete_job(credentials=ctx.credentials, perform=self._perform, job=ctx.job, logger=log)

        log.summary(
            "Results downloaded",
            [
                ("Job", ctx.job),
                ("Records", merged.merged),
                ("Peaks", merged.rows),
                ("Actual cost", f"{checked.action.actual_cost:.2f}"),
                ("Log", downloaded.log_path or "-"),
            ],
        )
        return RunOutcome.RESULTS_DOWNLOADED

    # ─────────────────────── check / delete ───────────────────────

    def _run_check(self, work_dir: Path) -> RunOutcome:
        ctx = self.context
        self.logger.stage("Status")
        ctx.job = fetch.resolve_job(batch=self.batch)
        checked = fetch.check_status(
            credentials=ctx.credentials,
            perform=self._perform,
            job=ctx.job,
            logger=self.logger,
            sleep_fn=self.sleep_fn,
        )
        action = checked.action
        ctx.status = action.status
        rows = [("Job", ctx.job), ("Status", action.status.value)]
        if action.date_updated is not None:
            rows.append(("Updated", action.date_updated.isoformat(sep=" ")))
        if action.results_file:
            rows.append(("Actual cost", f"{action.actual_cost:.2f}"))
        self.logger.summary("Job status", rows, ok=action.status.is_terminal)
        return RunOutcome.STATUS_REPORTED

    def _run_delete(self, work_dir: Path) -> RunOutcome:
        ctx = self.context
        self.logger.stage("Delete")
        ctx.job = fetch.resolve_job(batch=self.batch)
        fetch.delete_job(credentials=ctx.credentials, perform=self._perform, job=ctx.job, logger=self.logger)
        fetch.clear_job_metadata(batch=self.batch)
        self.modified = True
        return RunOutcome.JOB_DELETED
