import json
from pathlib import Path

from kspenv import Project
from kspenv.observability import StructuredLogger


def test_logger_filters_records_by_system_and_operation() -> None:
    logger = StructuredLogger()
    logger.log(operation="resolve_toolchain", system="x86_64-linux", output=None, component="toolchain", message="a")
    logger.log(operation="derive", system="aarch64-darwin", output=None, component=None, message="b")

    assert [record["message"] for record in logger.records_for_system("x86_64-linux")] == ["a"]
    assert [record["message"] for record in logger.records_for_operation("derive")] == ["b"]


def test_logger_exports_json_lines(tmp_path: Path) -> None:
    logger = StructuredLogger()
    logger.log(
        operation="build_start",
        system="x86_64-linux",
        output="package",
        component="kspacker",
        message="Starting cargo build.",
        level="debug",
        extra={"command": ["cargo", "build"]},
    )

    path = logger.to_json_lines(tmp_path / "logs" / "run.jsonl")
    record = json.loads(path.read_text(encoding="utf-8").splitlines()[0])

    assert record["level"] == "debug"
    assert record["extra"] == {"command": ["cargo", "build"]}


def test_project_logs_each_evaluation_step(kspacker: Project) -> None:
    outputs = kspacker.outputs("x86_64-linux")

    operations = [record["operation"] for record in kspacker.logger.records_for_system("x86_64-linux")]
    derive = kspacker.logger.records_for_operation("derive")[0]

    assert operations == ["resolve_toolchain", "compose", "derive"]
    assert derive["extra"] == {"digest": outputs.digest()}
