from __future__ import annotations

import sys
from pathlib import Path

import pytest

from deployforge.runner import (
    HandlerNotFoundError,
    RunnerError,
    TaskRunner,
    TaskStatus,
    classify,
    describe_exit_code,
)
from deployforge.runner.runner import INTERPRETERS


# -------------------------
# Exit code classification
# -------------------------


@pytest.mark.parametrize(
    "code, codes, expected",
    [
        (0, {0}, TaskStatus.SUCCESS),
        (3010, {0, 3010}, TaskStatus.SUCCESS),
        (-1978335135, {0, -1978335135}, TaskStatus.SUCCESS),
        (1, {0}, TaskStatus.FAILED),
        (0, {3010}, TaskStatus.FAILED),
        (1603, {0, 3010}, TaskStatus.FAILED),
    ],
)
def test_classify_uses_success_codes_only(code: int, codes: set[int], expected: TaskStatus) -> None:
    quiet = classify("t", code, codes)
    noisy = classify("t", code, codes, stdout="all good", stderr="FATAL ERROR: everything failed")

    assert quiet.status is expected
    assert noisy.status is expected


def test_classify_failure_message_has_description_and_stderr_fragments() -> None:
    result = classify(
        "msi",
        1603,
        {0},
        stderr="starting\nError 1722: custom action failed\nbye\n",
    )

    assert result.status is TaskStatus.FAILED
    assert result.exit_code == 1603
    assert "fatal error during installation" in result.error_message
    assert "Error 1722: custom action failed" in result.error_message
    assert "starting" not in result.error_message


def test_classify_timeout_is_failed_and_marked() -> None:
    result = classify("slow", None, {0}, timed_out=True, timeout_s=1.5, stdout="partial")

    assert result.status is TaskStatus.FAILED
    assert result.timed_out is True
    assert result.error_message == "timed out after 1.5s"
    assert result.stdout == "partial"


def test_describe_exit_code_known_and_unknown() -> None:
    assert describe_exit_code(3010) == "exit code 3010: success, restart required"
    assert "already installed" in describe_exit_code(-1978335135)
    # unsigned form of the same code
    assert "already installed" in describe_exit_code(0x8A150061)
    assert describe_exit_code(42) == "exit code 42"


# -------------------------
# Process execution
# -------------------------


def test_run_success_captures_output(make_handler, make_task) -> None:
    handler = make_handler(
        "hello", "import sys; print('out line'); print('err line', file=sys.stderr)"
    )
    result = TaskRunner().run(make_task("hello", handler))

    assert result.status is TaskStatus.SUCCESS
    assert result.exit_code == 0
    assert "out line" in result.stdout
    assert "err line" in result.stderr
    assert result.duration_s >= 0


def test_run_exit_code_in_success_set(make_handler, make_task) -> None:
    handler = make_handler("reboot", "raise SystemExit(194)")
    task = make_task("reboot", handler, success_codes={0, 194})

    result = TaskRunner().run(task)

    assert result.status is TaskStatus.SUCCESS
    assert result.exit_code == 194


def test_run_exit_code_outside_success_set(make_handler, make_task) -> None:
    handler = make_handler("broken", "import sys; print('install error', file=sys.stderr); raise SystemExit(67)")
    result = TaskRunner().run(make_task("broken", handler, success_codes={0, 194}))

    assert result.status is TaskStatus.FAILED
    assert result.exit_code == 67
    assert "install error" in result.error_message


def test_run_passes_args_env_and_working_dir(tmp_path: Path, make_handler, make_task) -> None:
    wd = tmp_path / "wd"
    wd.mkdir()
    handler = make_handler(
        "env",
        "import os, sys\n"
        "from pathlib import Path\n"
        "Path('seen.txt').write_text(sys.argv[1] + ':' + os.environ['DF_TEST'], encoding='utf-8')\n",
    )
    task = make_task("env", handler, args=["arg1"], env={"DF_TEST": "ok"}, working_dir=str(wd))

    result = TaskRunner().run(task)

    assert result.status is TaskStatus.SUCCESS
    assert (wd / "seen.txt").read_text(encoding="utf-8") == "arg1:ok"


def test_run_has_no_stdin(make_handler, make_task) -> None:
    handler = make_handler("stdin", "import sys; raise SystemExit(0 if sys.stdin.read() == '' else 9)")
    assert TaskRunner().run(make_task("stdin", handler)).status is TaskStatus.SUCCESS


def test_run_timeout_kills_process(make_handler, make_task) -> None:
    handler = make_handler("hang", "import sys, time; print('started', flush=True); time.sleep(60)")
    runner = TaskRunner()

    result = runner.run(make_task("hang", handler), timeout_s=1.0)

    assert result.status is TaskStatus.FAILED
    assert result.timed_out is True
    assert "timed out" in result.error_message
    assert result.duration_s < 30
    assert "started" in result.stdout
    assert runner.in_flight == frozenset()


def test_output_sinks_are_removed(tmp_path: Path, make_handler, make_task) -> None:
    sinks = tmp_path / "sinks"
    sinks.mkdir()
    handler = make_handler("tidy", "print('x')")

    TaskRunner(temp_dir=sinks).run(make_task("tidy", handler))

    assert list(sinks.iterdir()) == []


def test_missing_handler_raises_not_found(tmp_path: Path, make_task) -> None:
    task = make_task("ghost", str(tmp_path / "nope.py"))
    with pytest.raises(HandlerNotFoundError):
        TaskRunner().run(task)


def test_spawn_failure_raises_runner_error(tmp_path: Path, make_task, monkeypatch: pytest.MonkeyPatch) -> None:
    script = tmp_path / "setup.ps1"
    script.write_text("exit 0", encoding="utf-8")
    monkeypatch.setitem(INTERPRETERS, ".ps1", [str(tmp_path / "no-such-shell.exe")])

    with pytest.raises(RunnerError) as exc:
        TaskRunner().run(make_task("ps", str(script)))

    assert not isinstance(exc.value, HandlerNotFoundError)


def test_command_uses_interpreter_by_suffix(make_task) -> None:
    runner = TaskRunner()
    task = make_task("x", "whatever", args=["-Silent"])

    assert runner.command_for(task, "C:/h/Install.ps1")[:2] == ["powershell.exe", "-NoProfile"]
    assert runner.command_for(task, "C:/h/Install.ps1")[-2:] == ["C:/h/Install.ps1", "-Silent"]
    assert runner.command_for(task, "C:/h/run.CMD")[:2] == ["cmd.exe", "/c"]
    assert runner.command_for(task, "/h/tool.py")[0] == sys.executable
    assert runner.command_for(task, "/h/tool.exe") == ["/h/tool.exe", "-Silent"]


# -------------------------
# Non-blocking launch + join
# -------------------------


def test_launch_then_join_runs_concurrently(tmp_path: Path, make_handler, make_task) -> None:
    # Each handler waits for the other's marker: only passes if both run at once.
    a_marker = tmp_path / "a.marker"
    b_marker = tmp_path / "b.marker"
    wait_for = (
        "import sys, time\n"
        "from pathlib import Path\n"
        "Path(sys.argv[1]).write_text('x')\n"
        "deadline = time.time() + 20\n"
        "while not Path(sys.argv[2]).exists():\n"
        "    if time.time() > deadline:\n"
        "        raise SystemExit(5)\n"
        "    time.sleep(0.05)\n"
    )
    handler = make_handler("rendezvous", wait_for)
    runner = TaskRunner()

    a = runner.launch(make_task("a", handler, args=[str(a_marker), str(b_marker)]))
    b = runner.launch(make_task("b", handler, args=[str(b_marker), str(a_marker)]))

    assert a.status is TaskStatus.RUNNING
    assert runner.in_flight == {"a", "b"}
    assert a.join().status is TaskStatus.SUCCESS
    assert b.join().status is TaskStatus.SUCCESS
    assert b.status is TaskStatus.SUCCESS
    assert runner.in_flight == frozenset()


def test_same_task_cannot_be_in_flight_twice(make_handler, make_task) -> None:
    handler = make_handler("slow", "import time; time.sleep(2)")
    runner = TaskRunner()
    task = make_task("slow", handler)

    handle = runner.launch(task)
    try:
        with pytest.raises(RunnerError):
            runner.launch(task)
    finally:
        handle.join()

    # Free again once joined
    assert runner.run(task).status is TaskStatus.SUCCESS
