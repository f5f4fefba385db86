from __future__ import annotations

import json
import tempfile
import unittest
from pathlib import Path

from pydantic import ValidationError

from paramtune.config import (
    ParameterSpec,
    TunerConfig,
    load_parameter_payload,
    parse_parameter_specs,
)
from paramtune.errors import ConfigurationError


class ParameterSpecParsingTests(unittest.TestCase):
    def test_integer_entry_is_categorical(self) -> None:
        specs = parse_parameter_specs({"c": 3})
        self.assertTrue(specs["c"].is_categorical)
        self.assertEqual(specs["c"].levels, 3)

    def test_pair_entry_is_numeric(self) -> None:
        specs = parse_parameter_specs({"x": [0.0, 1.5]})
        spec = specs["x"]
        self.assertFalse(spec.is_categorical)
        self.assertEqual((spec.lower, spec.upper), (0.0, 1.5))

    def test_integer_bounds_are_accepted_as_numeric(self) -> None:
        specs = parse_parameter_specs({"x": [-1, 1]})
        self.assertEqual((specs["x"].lower, specs["x"].upper), (-1.0, 1.0))

    def test_tagged_and_explicit_forms(self) -> None:
        specs = parse_parameter_specs(
            {
                "a": {"Categorical": 2},
                "b": {"Numeric": [0.1, 0.2]},
                "c": {"type": "categorical", "levels": 4},
                "d": {"type": "numeric", "low": -3.0, "high": 3.0},
            }
        )
        self.assertEqual(specs["a"].levels, 2)
        self.assertEqual((specs["b"].lower, specs["b"].upper), (0.1, 0.2))
        self.assertEqual(specs["c"].levels, 4)
        self.assertEqual((specs["d"].lower, specs["d"].upper), (-3.0, 3.0))

    def test_dumped_specs_parse_back(self) -> None:
        specs = parse_parameter_specs({"c": 3, "x": [0.5, 2.0]})
        dumped = {name: spec.model_dump(mode="json", exclude_none=True) for name, spec in specs.items()}
        self.assertEqual(parse_parameter_specs(json.loads(json.dumps(dumped))), specs)

    def test_kind_entry_rejects_mismatched_fields(self) -> None:
        with self.assertRaises(ConfigurationError):
            parse_parameter_specs({"c": {"kind": "categorical", "lower": 0.0, "upper": 1.0}})

    def test_specs_are_sorted_by_name(self) -> None:
        specs = parse_parameter_specs({"zeta": 2, "alpha": [0, 1], "m": 3})
        self.assertEqual(list(specs), ["alpha", "m", "zeta"])

    def test_zero_levels_pass_structural_validation(self) -> None:
        # The level count is range-checked when the search space is built.
        specs = parse_parameter_specs({"c": 0})
        self.assertEqual(specs["c"].levels, 0)

    def test_boolean_entry_is_rejected(self) -> None:
        with self.assertRaises(ConfigurationError) as ctx:
            parse_parameter_specs({"flag": True})
        self.assertIn("flag", str(ctx.exception))

    def test_fractional_level_count_is_rejected(self) -> None:
        with self.assertRaises(ConfigurationError):
            parse_parameter_specs({"c": {"Categorical": 2.5}})

    def test_negative_level_count_is_rejected(self) -> None:
        with self.assertRaises(ConfigurationError):
            parse_parameter_specs({"c": -1})

    def test_wrong_pair_length_is_rejected(self) -> None:
        with self.assertRaises(ConfigurationError):
            parse_parameter_specs({"x": [0.0, 1.0, 2.0]})

    def test_non_finite_bounds_are_rejected(self) -> None:
        with self.assertRaises(ConfigurationError):
            parse_parameter_specs({"x": [0.0, float("inf")]})

    def test_invalid_names_are_rejected(self) -> None:
        for name in ("", "-x", "learning rate"):
            with self.subTest(name=name):
                with self.assertRaises(ConfigurationError):
                    parse_parameter_specs({name: 2})

    def test_every_invalid_entry_is_reported(self) -> None:
        with self.assertRaises(ConfigurationError) as ctx:
            parse_parameter_specs({"a": "oops", "b": [1.0], "c": 2})
        message = str(ctx.exception)
        self.assertIn("- a", message)
        self.assertIn("- b", message)
        self.assertNotIn("- c", message)

    def test_empty_payload_is_rejected(self) -> None:
        with self.assertRaises(ConfigurationError):
            parse_parameter_specs({})

    def test_spec_is_immutable(self) -> None:
        spec = ParameterSpec(kind="categorical", levels=2)
        with self.assertRaises(ValidationError):
            spec.levels = 5  # type: ignore[misc]


class PayloadLoadingTests(unittest.TestCase):
    def test_inline_json(self) -> None:
        payload = load_parameter_payload('{"x": [0.0, 1.0], "c": 3}')
        self.assertEqual(payload, {"x": [0.0, 1.0], "c": 3})

    def test_invalid_json_raises_configuration_error(self) -> None:
        with self.assertRaises(ConfigurationError):
            load_parameter_payload("{x: [0, 1]")

    def test_non_mapping_root_is_rejected(self) -> None:
        with self.assertRaises(ConfigurationError):
            load_parameter_payload("[1, 2]")

    def test_yaml_and_json_files(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            yaml_path = Path(tmpdir) / "space.yaml"
            yaml_path.write_text("lr: [0.001, 0.1]\nlayers: 4\n", encoding="utf-8")
            json_path = Path(tmpdir) / "space.json"
            json_path.write_text(json.dumps({"x": {"Numeric": [0, 1]}}), encoding="utf-8")

            self.assertEqual(
                load_parameter_payload(f"@{yaml_path}"),
                {"lr": [0.001, 0.1], "layers": 4},
            )
            self.assertEqual(load_parameter_payload(f"@{json_path}"), {"x": {"Numeric": [0, 1]}})

    def test_missing_file_is_reported(self) -> None:
        with self.assertRaises(ConfigurationError) as ctx:
            load_parameter_payload("@/nonexistent/space.yaml")
        self.assertIn("not found", str(ctx.exception))


class TunerConfigTests(unittest.TestCase):
    def test_defaults(self) -> None:
        config = TunerConfig.model_validate({"command": "train"})
        self.assertIsNone(config.workdir)
        self.assertEqual(config.env, {})
        self.assertEqual(config.iterations, 100)
        self.assertEqual(config.seed, 0)
        self.assertFalse(config.maximize)
        self.assertEqual(config.sampler, "tpe")
        self.assertEqual(config.args, [])

    def test_sampler_is_normalised(self) -> None:
        config = TunerConfig.model_validate({"command": "train", "sampler": " Random "})
        self.assertEqual(config.sampler, "random")

    def test_invalid_values_are_rejected(self) -> None:
        for overrides in (
            {"iterations": 0},
            {"seed": -1},
            {"sampler": "cmaes"},
            {"command": "  "},
            {"unknown": 1},
            {"workdir": "/no/such/paramtune/dir"},
            {"env": {"A=B": "1"}},
        ):
            with self.subTest(overrides=overrides):
                with self.assertRaises(ValidationError):
                    TunerConfig.model_validate({"command": "train", **overrides})


if __name__ == "__main__":
    unittest.main()
