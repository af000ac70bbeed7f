"""
Basic tests for error classification and run reports.
"""

import pytest

from shipyard.errors import ConfigValidationError, ExternalCommandError, WorkspaceValidationError
from shipyard.obs import (
    ErrorClassifier, ErrorRecord, HintRule, Phase, PhaseResult, PipelineRunReport, Severity,
)


class TestErrorClassifier:
    """Test severity assignment and operator hints."""

    def test_build_failure_is_fatal_with_hint(self):
        classifier = ErrorClassifier()
        error = ExternalCommandError(
            "Command failed with exit code 2: npm run build:backend:production",
            args=["npm", "run", "build:backend:production"],
            exit_code=2,
            output="src/index.ts(3,1): error TS2304: Cannot find name 'x'.",
        )

        record = classifier.classify(error, Phase.BACKEND_BUILD, {"workspace_root": "/app"})

        assert record.severity is Severity.FATAL
        assert record.kind == "ExternalCommandError"
        assert record.reason_code == "typescript_error"
        assert record.context["exit_code"] == 2
        assert record.context["workspace_root"] == "/app"
        assert record.context["output_tail"][-1].startswith("src/index.ts")

    @pytest.mark.parametrize("phase", [Phase.LOG_ROTATION, Phase.MONITORING, Phase.HEALTH_CHECK, Phase.ORGANIZE_OUTPUT])
    def test_best_effort_phases_are_recoverable(self, phase):
        record = ErrorClassifier().classify(RuntimeError("boom"), phase)
        assert record.severity is Severity.RECOVERABLE

    def test_nginx_validation_hint(self):
        error = ConfigValidationError("/etc/nginx/nginx.conf", 'nginx: [emerg] unexpected "}" in line 12')
        record = ErrorClassifier().classify(error, Phase.PROXY_CONFIG)
        assert record.reason_code == "nginx_config"
        assert record.context["file"] == "/etc/nginx/nginx.conf"
        assert record.fatal

    def test_workspace_violations_in_context(self):
        error = WorkspaceValidationError(["Missing required path: tsconfig.json"], root="/app")
        record = ErrorClassifier().classify(error, Phase.WORKSPACE_VALIDATION)
        assert record.reason_code == "missing_path"
        assert record.context["violations"] == ["Missing required path: tsconfig.json"]

    def test_no_hint_for_unknown_output(self):
        record = ErrorClassifier().classify(ValueError("strange"), Phase.CLEANUP)
        assert record.reason_code is None
        assert record.hint is None
        assert "hint" not in record.to_dict()

    def test_advisory_is_always_recoverable(self):
        record = ErrorClassifier().advisory(Phase.SUPERVISOR_START, "pm2 save failed", kind="SupervisorSaveFailed")
        assert record.severity is Severity.RECOVERABLE
        assert record.kind == "SupervisorSaveFailed"

    def test_custom_rule_takes_precedence(self):
        classifier = ErrorClassifier()
        classifier.add_custom_rule(HintRule("vendor", "Vendor", [r"npm ERR! vendor"], "Call the vendor"))
        assert classifier.match_hint("npm ERR! vendor outage").id == "vendor"


class TestPipelineRunReport:

    def test_summary_names_first_fatal_error(self):
        report = PipelineRunReport(run_id="r-20240101-000000-abcd", pipeline="deploy")
        first = ErrorRecord(Phase.PROXY_CONFIG, "nginx rejected config", Severity.FATAL)
        report.add_phase(PhaseResult(Phase.PROXY_CONFIG, success=False, error=first))
        report.add_error(ErrorRecord(Phase.PROXY_ROLLBACK, "restore failed", Severity.FATAL))
        report.aborted_at = Phase.PROXY_CONFIG
        report.finalize()

        assert not report.success
        assert report.summary() == "Pipeline 'deploy' aborted at phase proxy_config: nginx rejected config"
        assert report.to_dict()["aborted_at"] == "proxy_config"

    def test_warnings_do_not_fail_the_run(self):
        report = PipelineRunReport(run_id="r-20240101-000000-abcd", pipeline="build")
        report.add_error(ErrorRecord(Phase.HEALTH_CHECK, "Frontend unhealthy", Severity.RECOVERABLE))
        report.finalize()
        assert report.success
        assert report.summary() == "Pipeline 'build' completed with 1 advisory warning(s)"

    def test_finalized_report_is_closed(self):
        report = PipelineRunReport(run_id="r-20240101-000000-abcd", pipeline="build").finalize()
        with pytest.raises(RuntimeError):
            report.add_phase(PhaseResult(Phase.CLEANUP, success=True))
