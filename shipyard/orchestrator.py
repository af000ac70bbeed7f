"""
Pipeline orchestrator: sequences phases for the build and deploy pipelines.
"""

import logging
import time
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import requests

from .build import BuildRunner, build_targets, organize_output
from .build.runner import BuildTarget
from .commands import CommandRunner, SubprocessRunner
from .context import RunContext
from .errors import ExternalCommandError, TransformationError
from .events import EventTypes
from .health import default_endpoints, probe_endpoints
from .obs.report import Phase, PipelineRunReport
from .proxy import ReverseProxyManager, from_settings
from .steps import BestEffortStep, Step
from .supervisor import Pm2Supervisor
from .transform import ConversionOptions, TransformationEngine, convert_files, scan_targets
from .workspace import (
    BUILD_REQUIRED_PATHS, DEPLOY_REQUIRED_PATHS, MB,
    clean_previous_build, require_valid_workspace, verify_build_output,
)

logger = logging.getLogger(__name__)


class PipelineOrchestrator:
    """Runs the build or deploy pipeline for one RunContext."""

    def __init__(
        self,
        context: RunContext,
        runner: Optional[CommandRunner] = None,
        session: Optional[requests.Session] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.ctx = context
        self.config = context.config
        self.runner = runner or SubprocessRunner()
        self.session = session
        self.builder = BuildRunner(
            self.runner,
            attempts=self.config.retries.build_attempts,
            retry_delay=self.config.retries.retry_delay,
            sleep=sleep,
        )
        proxy = self.config.proxy
        self.proxy = ReverseProxyManager(
            self.runner,
            config_path=proxy.config_path,
            backup_dir=proxy.backup_dir,
            binary=proxy.binary,
            timeout=self.config.timeouts.proxy,
        )
        sup = self.config.supervisor
        self.supervisor = Pm2Supervisor(
            self.runner,
            workspace=str(self.config.workspace_path),
            manifest=sup.manifest,
            environment=sup.environment,
            process_group=sup.process_group,
            binary=sup.binary,
            timeout=self.config.timeouts.supervisor,
        )
        self.details: Dict[str, Any] = {}

    # Pipelines

    def run_build(self) -> PipelineRunReport:
        return self._execute("build", self._build_steps(BUILD_REQUIRED_PATHS))

    def run_deploy(self) -> PipelineRunReport:
        return self._execute("deploy", self._build_steps(DEPLOY_REQUIRED_PATHS) + self._deploy_steps())

    def _build_steps(self, required_paths) -> List[Step]:
        cfg = self.config
        steps = [Step(Phase.WORKSPACE_VALIDATION, lambda: self._validate_workspace(required_paths))]
        if cfg.cleanup_before_build:
            steps.append(Step(Phase.CLEANUP, self._cleanup))
        if cfg.transform.enabled:
            steps.append(Step(Phase.SOURCE_TRANSFORM, self._transform_sources))
        for target in build_targets(cfg):
            steps.append(Step(target.phase, self._build_action(target)))
        steps.append(BestEffortStep(Phase.ORGANIZE_OUTPUT, self._organize))
        if cfg.validate_after_build:
            steps.append(Step(Phase.BUILD_VERIFICATION, lambda: verify_build_output(cfg.output_path)))
        return steps

    def _deploy_steps(self) -> List[Step]:
        cfg = self.config
        steps = []
        if cfg.enable_reverse_proxy:
            steps.append(Step(Phase.PROXY_CONFIG, self._configure_proxy))
        steps.append(Step(Phase.SUPERVISOR_START, self._start_services))
        if cfg.setup_log_rotation:
            steps.append(BestEffortStep(Phase.LOG_ROTATION, lambda: self.supervisor.setup_log_rotation(
                cfg.supervisor.log_max_size, cfg.supervisor.log_retain)))
        if cfg.setup_monitoring:
            steps.append(BestEffortStep(Phase.MONITORING, self.supervisor.setup_monitoring))
        steps.append(Step(Phase.HEALTH_CHECK, self._check_health))
        return steps

    def _execute(self, pipeline: str, steps: List[Step]) -> PipelineRunReport:
        report = PipelineRunReport(run_id=self.ctx.run_id, pipeline=pipeline)
        self.ctx.emit(EventTypes.RUN_START, {
            "pipeline": pipeline,
            "workspace": str(self.config.workspace_path),
            "phases": [s.phase.value for s in steps],
        })
        logger.info(f"🚀 Starting {pipeline} pipeline (run {self.ctx.run_id})")

        for step in steps:
            result = step.run(self.ctx)
            report.add_phase(result)
            for advisory in self.ctx.drain_advisories():
                report.add_error(advisory)
            if result.error is not None and result.error.fatal:
                report.aborted_at = step.phase
                self._rollback_if_requested(report, step.phase)
                break

        report.finalize()
        summary = report.summary()
        if report.success:
            logger.info(f"✅ {summary}")
            self.ctx.emit(EventTypes.RUN_DONE, {"summary": summary, "duration_ms": report.duration_ms})
        else:
            logger.error(f"❌ {summary}")
            self.ctx.emit(EventTypes.RUN_ABORTED, {
                "summary": summary,
                "phase": report.aborted_at.value if report.aborted_at else None,
            })
        report.details = dict(self.details)
        return report

    # Build phases

    def _validate_workspace(self, required_paths) -> str:
        report = require_valid_workspace(
            self.config.workspace_path,
            required_paths,
            self.config.build.min_free_mb * MB,
        )
        return f"{len(required_paths)} required paths present, {report.free_bytes // MB}MB free"

    def _cleanup(self) -> str:
        removed = clean_previous_build(self.config.workspace_path)
        return f"removed: {', '.join(removed)}" if removed else "nothing to remove"

    def _transform_sources(self) -> str:
        settings = self.config.transform
        root = self.config.workspace_path
        files = []
        for rel in settings.paths:
            target = root / rel
            if not target.exists():
                self.ctx.advise(self.ctx.classifier.advisory(
                    Phase.SOURCE_TRANSFORM, f"Transform path does not exist: {rel}", {"file": str(target)}))
                continue
            files.extend(scan_targets(target, settings.extensions))

        engine = TransformationEngine(inject_shim=settings.inject_shim, min_output_chars=settings.min_output_chars)
        options = ConversionOptions(
            write=True,
            backup=settings.backup,
            keep_partial=settings.keep_partial,
            rename_to_cjs=settings.rename_to_cjs,
        )
        batch = convert_files(files, engine, options)
        self.details["conversion"] = batch.to_dict()
        for report in batch.succeeded:
            if report.needed:
                self.ctx.emit(EventTypes.FILE_CONVERTED, {"path": report.path, "counts": report.category_counts})
        for report in batch.failed:
            self.ctx.emit(EventTypes.FILE_CONVERSION_FAILED, report.to_dict())
        if batch.failed:
            failed = [r.path for r in batch.failed]
            reasons = "; ".join(f"{r.path}: {r.error or ', '.join(r.violations)}" for r in batch.failed)
            raise TransformationError(
                f"{len(batch.failed)} of {batch.total} file(s) failed conversion: {reasons}", failed)
        return batch.summary()

    def _build_action(self, target: BuildTarget) -> Callable[[], str]:
        def action() -> str:
            outcome = self.builder.build(target)
            outcome.result.raise_for_status(
                f"{target.name} build failed after {outcome.attempts} attempt(s): {' '.join(target.args)}")
            return "\n".join(outcome.result.tail())
        return action

    def _organize(self) -> str:
        result = organize_output(self.config.output_path, self.config.workspace_path / self.config.build.source_dir)
        for warning in result.warnings:
            self.ctx.advise(self.ctx.classifier.advisory(Phase.ORGANIZE_OUTPUT, warning))
        self.details["organize"] = {"moved": result.moved, "warnings": result.warnings}
        return f"{len(result.moved)} move(s), {len(result.warnings)} warning(s)"

    # Deploy phases

    def _configure_proxy(self) -> str:
        cfg = from_settings(self.config.proxy, enable_tls=self.config.enable_tls)
        text = self.proxy.generate(cfg)
        backup = self.proxy.apply(text)
        self.proxy.reload().raise_for_status("nginx reload failed")
        self.details["proxy"] = {
            "config_path": str(self.proxy.config_path),
            "backup": str(backup) if backup else None,
        }
        return f"applied {self.proxy.config_path}" + (f" (backup {backup})" if backup else "")

    def _start_services(self) -> str:
        self.supervisor.stop()
        started = self.supervisor.start()
        if not started.ok:
            logger.warning("pm2 start failed; falling back to startOrRestart")
            restarted = self.supervisor.restart_or_start()
            if not restarted.ok:
                raise ExternalCommandError(
                    "Process supervisor could not start or restart the application",
                    args=restarted.args,
                    exit_code=restarted.exit_code,
                    output="\n".join(filter(None, [started.output, restarted.output])),
                    timed_out=restarted.timed_out,
                )
        saved = self.supervisor.save()
        if not saved.ok:
            self.ctx.advise(self.ctx.classifier.advisory(
                Phase.SUPERVISOR_START, "pm2 save failed; process list will not survive a reboot",
                {"command": " ".join(saved.args)}))
        return "processes started"

    def _check_health(self) -> str:
        endpoints = default_endpoints(self.config)
        health = probe_endpoints(endpoints, timeout=self.config.timeouts.health, session=self.session)
        self.details["health"] = [r.to_dict() for r in health.results]
        for result in health.unhealthy:
            self.ctx.emit(EventTypes.HEALTH_FAIL, result.to_dict())
            self.ctx.advise(self.ctx.classifier.advisory(
                Phase.HEALTH_CHECK,
                f"{result.name} unhealthy: {result.error}",
                {"url": result.url, "status_code": result.status_code},
                kind="HealthCheckFailure",
            ))
        if health.all_healthy:
            self.ctx.emit(EventTypes.HEALTH_OK, {"count": len(health.results)})
        return health.summary()

    # Rollback

    def _rollback_if_requested(self, report: PipelineRunReport, failed_phase: Phase) -> None:
        if not self.config.restore_proxy_on_failure:
            return
        if report.phase(Phase.PROXY_CONFIG) is None:
            return
        backup = self.proxy.last_backup
        if backup is None:
            logger.warning("No proxy backup from this run; leaving configuration in place")
            return

        def restore() -> str:
            self.proxy.restore(str(backup))
            self.proxy.reload().raise_for_status("nginx reload after restore failed")
            return f"restored {self.proxy.config_path} from {Path(backup).name}"

        self.ctx.emit(EventTypes.ROLLBACK, {"phase": failed_phase.value, "backup": str(backup)})
        report.add_phase(Step(Phase.PROXY_ROLLBACK, restore).run(self.ctx))
