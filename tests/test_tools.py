import json
import unittest
from unittest.mock import patch, MagicMock

from src import tools
from src.config import FalconConfig
from src.errors import ConfigurationError
from src.falcon_client import FalconClient, TokenManager

from tests.helpers import BASE_URL, FakeClock, make_response, token_response


class TestToolCatalogue(unittest.TestCase):

    def test_lists_every_operation(self):
        names = [tool.name for tool in tools.list_tools()]
        self.assertEqual(
            names,
            [
                "list_detections",
                "get_detection_details",
                "list_devices",
                "get_device_details",
                "list_incidents",
                "get_incident_details",
                "search_indicators",
                "run_remote_command",
            ],
        )

    def test_required_arguments_declared(self):
        self.assertEqual(tools.get_tool("get_device_details").input_schema["required"], ["ids"])
        self.assertEqual(
            tools.get_tool("run_remote_command").input_schema["required"], ["device_id", "command"]
        )
        self.assertNotIn("required", tools.get_tool("list_detections").input_schema)

    def test_every_tool_maps_to_a_client_method(self):
        for tool in tools.list_tools():
            self.assertTrue(callable(getattr(FalconClient, tool.name, None)), tool.name)


class TestInvoke(unittest.TestCase):

    def setUp(self):
        config = FalconConfig(client_id="test_id", client_secret="test_secret", base_url=BASE_URL)
        self.client = FalconClient(config, TokenManager(config, clock=FakeClock()))
        self.get_client = lambda: self.client

    @patch('requests.post')
    @patch('requests.request')
    def test_search_indicators_end_to_end(self, mock_request, mock_requests_post):
        mock_requests_post.return_value = token_response()
        mock_request.return_value = make_response(200, {"resources": ["abc"]})

        result = tools.invoke(
            self.get_client, "search_indicators", {"types": ["domain"], "values": ["example.com"]}
        )

        self.assertFalse(result.is_error)
        self.assertEqual(result.text, json.dumps({"resources": ["abc"]}, indent=2))
        self.assertEqual(
            mock_request.call_args.kwargs['params'],
            {"limit": 50, "types": "domain", "values": "example.com"},
        )

    @patch('requests.post')
    @patch('requests.request')
    def test_remote_error_becomes_error_result(self, mock_request, mock_requests_post):
        mock_requests_post.return_value = token_response()
        mock_request.return_value = make_response(503, text="Service Unavailable", body={})

        result = tools.invoke(self.get_client, "list_devices", {"filter": "hostname:'web*'"})

        self.assertTrue(result.is_error)
        self.assertTrue(result.text.startswith("Error: "))
        self.assertIn("503", result.text)

    @patch('requests.post')
    @patch('requests.request')
    def test_empty_ids_is_validation_error_without_network(self, mock_request, mock_requests_post):
        for name in ("get_detection_details", "get_device_details", "get_incident_details"):
            for arguments in ({"ids": []}, {}):
                result = tools.invoke(self.get_client, name, arguments)
                self.assertTrue(result.is_error)
                self.assertIn("At least one", result.text)

        mock_request.assert_not_called()
        mock_requests_post.assert_not_called()

    @patch('requests.post')
    @patch('requests.request')
    def test_token_shared_across_invocations(self, mock_request, mock_requests_post):
        mock_requests_post.return_value = token_response()
        mock_request.return_value = make_response(200, {"resources": []})

        tools.invoke(self.get_client, "list_detections", {})
        tools.invoke(self.get_client, "list_incidents", {"limit": 5})

        mock_requests_post.assert_called_once()

    @patch('requests.post')
    @patch('requests.request')
    def test_remote_command_failure_reported_after_teardown(self, mock_request, mock_requests_post):
        mock_requests_post.return_value = token_response()
        mock_request.side_effect = [
            make_response(201, {"resources": [{"session_id": "sess-9"}]}),
            make_response(500, {"errors": [{"code": 500, "message": "command failed"}]}),
            make_response(500, {"errors": [{"code": 500, "message": "teardown failed"}]}),
        ]

        result = tools.invoke(
            self.get_client, "run_remote_command", {"device_id": "dev-1", "command": "ls"}
        )

        self.assertTrue(result.is_error)
        self.assertIn("command failed", result.text)
        self.assertNotIn("teardown failed", result.text)
        self.assertEqual(mock_request.call_args[0][0], "DELETE")

    def test_unknown_tool(self):
        get_client = MagicMock()

        result = tools.invoke(get_client, "falcon_do_everything", {})

        self.assertTrue(result.is_error)
        self.assertEqual(result.text, "Error: Unknown tool: falcon_do_everything")
        get_client.assert_not_called()

    def test_undeclared_arguments_are_dropped(self):
        client = MagicMock()
        client.list_devices.return_value = {"resources": ["d1"]}

        result = tools.invoke(lambda: client, "list_devices", {"limit": 3, "offset": 100})

        self.assertFalse(result.is_error)
        client.list_devices.assert_called_once_with(limit=3)

    def test_configuration_error_becomes_error_result(self):
        def get_client():
            raise ConfigurationError("FALCON_CLIENT_ID and FALCON_CLIENT_SECRET environment variables must be set")

        result = tools.invoke(get_client, "list_detections", {})

        self.assertTrue(result.is_error)
        self.assertIn("FALCON_CLIENT_ID", result.text)

    def test_unexpected_exception_is_contained(self):
        client = MagicMock()
        client.list_incidents.side_effect = RuntimeError("boom")

        result = tools.invoke(lambda: client, "list_incidents", {})

        self.assertTrue(result.is_error)
        self.assertEqual(result.text, "Error: boom")

    @patch('requests.post')
    @patch('requests.request')
    def test_non_iterable_indicator_types_is_validation_error(self, mock_request, mock_requests_post):
        result = tools.invoke(self.get_client, "search_indicators", {"types": 5})

        self.assertTrue(result.is_error)
        self.assertEqual(result.text, "Error: types must be a string or a list of strings")
        mock_request.assert_not_called()

    def test_non_mapping_arguments_rejected(self):
        result = tools.invoke(MagicMock(), "list_devices", ["limit", 10])

        self.assertTrue(result.is_error)
        self.assertIn("must be an object", result.text)


if __name__ == '__main__':
    unittest.main()
