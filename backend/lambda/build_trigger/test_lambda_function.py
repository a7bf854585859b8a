"""build_trigger handler tests.

Covers push parsing and the find-or-provision-then-build flow with every
external call mocked.

Run: python3 -m pytest test_lambda_function.py -v
"""

from __future__ import annotations

import datetime as dt
import importlib.util
import json
import os
import sys
import unittest
from unittest.mock import patch

_HERE = os.path.dirname(os.path.abspath(__file__))
sys.path.insert(0, os.path.join(_HERE, "..", "shared_layer", "python"))

from shepherd_shared.errors import (
    ExternalServiceError,
    InvalidEventError,
    SecretsError,
    UnsupportedImageError,
)
from shepherd_shared.builds import default_buildspec
from shepherd_shared.overrides import ResolvedConfig

_SPEC = importlib.util.spec_from_file_location(
    "build_trigger",
    os.path.join(_HERE, "lambda_function.py"),
)
build_trigger = importlib.util.module_from_spec(_SPEC)
assert _SPEC and _SPEC.loader
sys.modules[_SPEC.name] = build_trigger
_SPEC.loader.exec_module(build_trigger)

_ENV = {
    "GITHUB_ACCESS_TOKEN": "gh-token",
    "AWS_ACCOUNT_ID": "123456789012",
    "AWS_DEFAULT_REGION": "us-east-1",
    "S3_BUCKET": "artifacts",
    "S3_PREFIX": "bundles",
    "PROJECT_ROLE": "arn:aws:iam::123456789012:role/bundle-shepherd-project",
    "STATUS_FUNCTION": "arn:aws:lambda:us-east-1:123456789012:function:bundle-shepherd-status",
    "USE_OAUTH": "false",
    "NPM_ACCESS_TOKEN": "secure:bnBt",
}

_PROJECT = "org_repo_nodejs6_x"


def _push(org: str = "org", repo: str = "repo", sha: str = "abc123") -> dict:
    return {"repository": {"owner": {"name": org}, "name": repo}, "after": sha}


def _sns_event(payload: dict) -> dict:
    return {"Records": [{"EventSource": "aws:sns", "Sns": {"Message": json.dumps(payload)}}]}


class ParseCommitTests(unittest.TestCase):
    def test_sns_wrapped_push(self):
        commit = build_trigger._parse_commit(_sns_event(_push()))
        self.assertEqual(commit, build_trigger.PushCommit(org="org", repo="repo", sha="abc123"))

    def test_raw_push(self):
        self.assertEqual(build_trigger._parse_commit(_push()).sha, "abc123")

    def test_missing_fields(self):
        with self.assertRaises(InvalidEventError) as ctx:
            build_trigger._parse_commit({"repository": {"name": "repo"}})
        self.assertIn("repository.owner.name", str(ctx.exception))
        self.assertIn("after", str(ctx.exception))

    def test_non_json_sns_message(self):
        with self.assertRaises(InvalidEventError):
            build_trigger._parse_commit({"Records": [{"Sns": {"Message": "not json"}}]})

    def test_non_object_sns_record(self):
        with self.assertRaises(InvalidEventError):
            build_trigger._parse_commit({"Records": ["not a record"]})


@patch.dict(os.environ, _ENV, clear=False)
@patch.object(build_trigger, "run_build")
@patch.object(build_trigger, "create_project")
@patch.object(build_trigger, "find_project")
@patch.object(build_trigger, "check_repo_overrides")
class TriggerFlowTests(unittest.TestCase):
    def test_new_project_is_provisioned_then_built(
        self, mock_overrides, mock_find, mock_create, mock_run
    ):
        mock_overrides.return_value = ResolvedConfig()
        mock_find.return_value = None
        mock_create.return_value = {"name": _PROJECT}
        mock_run.return_value = {
            "id": f"{_PROJECT}:1",
            "startTime": dt.datetime(2017, 6, 1, tzinfo=dt.timezone.utc),
        }

        result = build_trigger.lambda_handler(_sns_event(_push()), None)

        self.assertEqual(result, {"id": f"{_PROJECT}:1", "startTime": "2017-06-01T00:00:00+00:00"})
        mock_overrides.assert_called_once()
        self.assertEqual(mock_overrides.call_args[0], ("org", "repo", "abc123", "gh-token"))
        mock_find.assert_called_once_with(_PROJECT, "us-east-1")

        options = mock_create.call_args[0][0]
        self.assertEqual(options.name, _PROJECT)
        self.assertEqual(
            options.image_uri,
            "123456789012.dkr.ecr.us-east-1.amazonaws.com/bundle-shepherd:nodejs6.x",
        )
        self.assertEqual(options.size, "small")
        self.assertEqual(options.npm_token, "secure:bnBt")

        args, kwargs = mock_run.call_args
        self.assertEqual(args, (_PROJECT, "abc123"))
        self.assertEqual(kwargs["bucket"], "artifacts")
        self.assertEqual(kwargs["prefix"], "bundles")
        self.assertEqual(kwargs["repo"], "repo")
        self.assertIn("npm install", kwargs["buildspec"])

    def test_existing_project_is_not_provisioned(
        self, mock_overrides, mock_find, mock_create, mock_run
    ):
        mock_overrides.return_value = ResolvedConfig(has_custom_buildspec=True, image="python3.6")
        mock_find.return_value = {"name": "org_repo_python3_6"}
        mock_run.return_value = {"id": "org_repo_python3_6:7"}

        build_trigger.lambda_handler(_push(), None)

        mock_create.assert_not_called()
        args, kwargs = mock_run.call_args
        self.assertEqual(args, ("org_repo_python3_6", "abc123"))
        self.assertIsNone(kwargs["buildspec"])

    def test_unsupported_default_image_aborts_before_provisioning(
        self, mock_overrides, mock_find, mock_create, mock_run
    ):
        mock_overrides.return_value = ResolvedConfig(image="ruby2.4")

        with self.assertRaises(UnsupportedImageError):
            build_trigger.lambda_handler(_push(), None)

        mock_find.assert_not_called()
        mock_create.assert_not_called()
        mock_run.assert_not_called()

    def test_custom_image_with_own_buildspec(
        self, mock_overrides, mock_find, mock_create, mock_run
    ):
        mock_overrides.return_value = ResolvedConfig(
            has_custom_buildspec=True, image="lambci/lambda:build-nodejs8.10", size="medium"
        )
        mock_find.return_value = None
        mock_create.return_value = {"name": "org_repo_lambda_build-nodejs8_10"}
        mock_run.return_value = {"id": "x"}

        build_trigger.lambda_handler(_push(), None)

        options = mock_create.call_args[0][0]
        self.assertEqual(options.image_uri, "lambci/lambda:build-nodejs8.10")
        self.assertEqual(options.size, "medium")

    def test_provisioning_failure_propagates(
        self, mock_overrides, mock_find, mock_create, mock_run
    ):
        mock_overrides.return_value = ResolvedConfig()
        mock_find.return_value = None
        mock_create.side_effect = ExternalServiceError("events", "PutRule", "denied")

        with self.assertRaises(ExternalServiceError):
            build_trigger.lambda_handler(_push(), None)

        mock_run.assert_not_called()

    @patch.object(build_trigger, "decrypt_secrets")
    def test_secret_failure_stops_everything(
        self, mock_decrypt, mock_overrides, mock_find, mock_create, mock_run
    ):
        mock_decrypt.side_effect = SecretsError("KMS could not decrypt GITHUB_ACCESS_TOKEN")

        with self.assertRaises(SecretsError):
            build_trigger.lambda_handler(_push(), None)

        mock_overrides.assert_not_called()
        mock_find.assert_not_called()


@patch.dict(os.environ, _ENV, clear=False)
@patch("shepherd_shared.builds._get_codebuild")
@patch.object(build_trigger, "find_project")
@patch.object(build_trigger, "check_repo_overrides")
class TriggerStartBuildTests(unittest.TestCase):
    def test_push_starts_build_with_default_buildspec_and_sha_artifact(
        self, mock_overrides, mock_find, mock_get_codebuild
    ):
        mock_overrides.return_value = ResolvedConfig()
        mock_find.return_value = {"name": _PROJECT}
        mock_get_codebuild.return_value.start_build.return_value = {
            "build": {"id": f"{_PROJECT}:3", "buildStatus": "IN_PROGRESS"}
        }

        result = build_trigger.lambda_handler(_sns_event(_push()), None)

        self.assertEqual(result["id"], f"{_PROJECT}:3")
        mock_get_codebuild.assert_called_once_with("us-east-1")
        mock_get_codebuild.return_value.start_build.assert_called_once_with(
            projectName=_PROJECT,
            sourceVersion="abc123",
            artifactsOverride={
                "type": "S3",
                "packaging": "ZIP",
                "location": "artifacts",
                "path": "bundles/repo",
                "name": "abc123.zip",
            },
            buildspecOverride=default_buildspec("nodejs6.x"),
        )


if __name__ == "__main__":
    unittest.main()
