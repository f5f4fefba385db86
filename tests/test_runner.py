from __future__ import annotations

import io
import tempfile
import unittest
from pathlib import Path

from _objectives import PYTHON, write_objective

from paramtune.errors import ObjectiveLaunchError, SubprocessFailure
from paramtune.runner import TrialRunner, build_arguments, flag_for


class ArgumentTests(unittest.TestCase):
    def test_flag_prefix_depends_on_name_length(self) -> None:
        self.assertEqual(flag_for("x"), "-x")
        self.assertEqual(flag_for("lr"), "--lr")
        self.assertEqual(flag_for("learning_rate"), "--learning_rate")

    def test_fixed_args_come_first_then_sorted_flags(self) -> None:
        arguments = build_arguments(
            ["train.py", "--epochs", "3"],
            {"learning_rate": "0.01", "x": "2", "batch": "1"},
        )
        self.assertEqual(
            arguments,
            [
                "train.py",
                "--epochs",
                "3",
                "--batch",
                "1",
                "--learning_rate",
                "0.01",
                "-x",
                "2",
            ],
        )


class TrialRunnerTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.tmpdir = Path(self._tmp.name)

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def test_captures_stdout_and_forwards_stderr(self) -> None:
        script = write_objective(
            self.tmpdir,
            """
            sys.stderr.write("epoch 1 done\\n")
            print("score,fixed")
            print(f"{params['x']},{'|'.join(fixed)}")
            """,
        )
        errors = io.BytesIO()
        runner = TrialRunner(PYTHON, [str(script), "extra"], error_stream=errors)

        output = runner.run(4, {"x": "0.5"})

        self.assertEqual(output.iteration, 4)
        self.assertEqual(output.returncode, 0)
        self.assertEqual(output.parameters, {"x": "0.5"})
        self.assertEqual(output.argv[-2:], ["-x", "0.5"])
        lines = output.stdout.decode("utf-8").splitlines()
        self.assertEqual(lines, ["score,fixed", "0.5,extra"])
        self.assertEqual(errors.getvalue(), b"epoch 1 done\n")
        self.assertTrue(output.timestamp)

    def test_non_zero_exit_is_fatal_and_still_forwards_stderr(self) -> None:
        script = write_objective(
            self.tmpdir,
            """
            sys.stderr.write("diverged\\n")
            print("score")
            print("1.0")
            sys.exit(3)
            """,
        )
        errors = io.BytesIO()
        runner = TrialRunner(PYTHON, [str(script)], error_stream=errors)

        with self.assertRaises(SubprocessFailure) as ctx:
            runner.run(7, {"lr": "0.1", "c": "2"})

        failure = ctx.exception
        self.assertEqual(failure.returncode, 3)
        self.assertEqual(failure.iteration, 7)
        self.assertEqual(failure.parameters, {"lr": "0.1", "c": "2"})
        message = str(failure)
        self.assertIn("status 3", message)
        self.assertIn("iteration 7", message)
        self.assertIn("lr=0.1", message)
        self.assertEqual(errors.getvalue(), b"diverged\n")

    def test_missing_command_raises_launch_error(self) -> None:
        runner = TrialRunner(str(self.tmpdir / "no-such-objective"), error_stream=io.BytesIO())
        with self.assertRaises(ObjectiveLaunchError) as ctx:
            runner.run(0, {"x": "1"})
        self.assertIsNone(ctx.exception.returncode)
        self.assertIsInstance(ctx.exception, SubprocessFailure)

    def test_extra_environment_is_passed(self) -> None:
        script = write_objective(
            self.tmpdir,
            """
            import os
            print("score")
            print(os.environ["PARAMTUNE_TEST_SCORE"])
            """,
        )
        runner = TrialRunner(
            PYTHON,
            [str(script)],
            error_stream=io.BytesIO(),
            env={"PARAMTUNE_TEST_SCORE": "0.75"},
        )
        output = runner.run(0, {})
        self.assertEqual(output.stdout.decode("utf-8").split(), ["score", "0.75"])

    def test_working_directory_is_used(self) -> None:
        workdir = self.tmpdir / "work"
        workdir.mkdir()
        script = write_objective(
            self.tmpdir,
            """
            from pathlib import Path
            Path("marker.txt").write_text("here")
            print("score")
            print(1)
            """,
        )
        runner = TrialRunner(PYTHON, [str(script)], error_stream=io.BytesIO(), cwd=str(workdir))
        runner.run(0, {})
        self.assertTrue((workdir / "marker.txt").exists())
        self.assertFalse((self.tmpdir / "marker.txt").exists())


if __name__ == "__main__":
    unittest.main()
