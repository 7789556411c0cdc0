"""
Tests for the docker compose connector.
"""

import logging
import unittest
from unittest.mock import AsyncMock, patch

from conftest import result

from compose_watcher.connectors.compose import ComposeConnector, create_compose_connector
from compose_watcher.exceptions import DeploymentError

RUN_COMMAND = "compose_watcher.connectors.compose.run_command"


class TestComposeConnector(unittest.IsolatedAsyncioTestCase):
    """Test cases for the ComposeConnector class."""

    def setUp(self):
        """Set up test fixtures."""
        self.directory = "/srv/stack"
        self.connector = ComposeConnector(self.directory)

    def test_create_compose_connector(self):
        connector = create_compose_connector(self.directory, compose_files=["compose.yaml"])
        self.assertIsInstance(connector, ComposeConnector)
        self.assertEqual(connector.compose_files, ["compose.yaml"])

    @patch(RUN_COMMAND, new_callable=AsyncMock)
    async def test_refresh_pulls_images_in_working_copy(self, mock_run):
        mock_run.return_value = result()

        await self.connector.refresh()

        mock_run.assert_called_once_with(["docker", "compose", "--progress", "quiet", "pull"], cwd=self.directory)

    @patch(RUN_COMMAND, new_callable=AsyncMock)
    async def test_reconcile_recreates_services_and_removes_orphans(self, mock_run):
        mock_run.return_value = result()

        await self.connector.reconcile()

        args = mock_run.call_args.args[0]
        self.assertEqual(
            args,
            ["docker", "compose", "--progress", "quiet", "up", "-d", "--remove-orphans", "--pull", "always"],
        )

    @patch(RUN_COMMAND, new_callable=AsyncMock)
    async def test_compose_files_and_flags_are_passed_through(self, mock_run):
        mock_run.return_value = result()
        connector = ComposeConnector(
            self.directory,
            docker_command="/usr/bin/docker",
            compose_files=["compose.yaml", "compose.prod.yaml"],
            up_flags=["--wait"],
        )

        await connector.reconcile(["--build"])

        args = mock_run.call_args.args[0]
        self.assertEqual(args[0], "/usr/bin/docker")
        self.assertEqual(args[4:8], ["-f", "compose.yaml", "-f", "compose.prod.yaml"])
        self.assertEqual(args[-2:], ["--wait", "--build"])

    @patch(RUN_COMMAND, new_callable=AsyncMock)
    async def test_failure_logs_output_and_raises(self, mock_run):
        mock_run.return_value = result(returncode=1, stdout="Pulling web", stderr="manifest unknown")

        with self.assertLogs("compose_watcher.connectors.compose", level=logging.ERROR) as logs:
            with self.assertRaises(DeploymentError) as ctx:
                await self.connector.refresh()

        self.assertIn("stdout=Pulling web", logs.output[0])
        self.assertIn("stderr=manifest unknown", logs.output[0])
        self.assertEqual(ctx.exception.outcome.returncode, 1)
        self.assertEqual(ctx.exception.outcome.stderr, "manifest unknown")
        self.assertFalse(ctx.exception.outcome.success)

    @patch(RUN_COMMAND, new_callable=AsyncMock)
    async def test_failure_omits_empty_streams_from_log(self, mock_run):
        mock_run.return_value = result(returncode=17, stderr="no configuration file provided")

        with self.assertLogs("compose_watcher.connectors.compose", level=logging.ERROR) as logs:
            with self.assertRaises(DeploymentError):
                await self.connector.reconcile()

        self.assertNotIn("stdout=", logs.output[0])
        self.assertIn("stderr=no configuration file provided", logs.output[0])

    @patch(RUN_COMMAND, new_callable=AsyncMock)
    async def test_missing_docker_executable_raises(self, mock_run):
        mock_run.side_effect = FileNotFoundError("docker")

        with self.assertRaises(DeploymentError):
            await self.connector.refresh()

    @patch(RUN_COMMAND, new_callable=AsyncMock)
    async def test_docker_that_cannot_be_started_raises_deployment_error(self, mock_run):
        mock_run.side_effect = PermissionError(13, "Permission denied", "/usr/local/bin/docker")

        with self.assertLogs("compose_watcher.connectors.compose", level=logging.ERROR):
            with self.assertRaises(DeploymentError) as ctx:
                await self.connector.reconcile()

        self.assertIsInstance(ctx.exception.__cause__, PermissionError)


if __name__ == "__main__":
    unittest.main()
