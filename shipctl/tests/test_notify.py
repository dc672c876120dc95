from unittest.mock import MagicMock, patch

import requests

from shipctl.utils.notify import send_slack_alert


@patch("shipctl.utils.notify.requests.post")
def test_alert_sent(mock_post):
    mock_post.return_value = MagicMock(status_code=200)
    assert send_slack_alert("https://hooks.slack.test/x", "cluster demo provisioned")
    assert mock_post.call_args[1]["json"] == {"text": "cluster demo provisioned"}


@patch("shipctl.utils.notify.requests.post")
def test_alert_failure_is_not_raised(mock_post):
    mock_post.side_effect = requests.ConnectionError("offline")
    assert send_slack_alert("https://hooks.slack.test/x", "hello") is False
    mock_post.side_effect = None
    mock_post.return_value = MagicMock(status_code=500, text="oops")
    assert send_slack_alert("https://hooks.slack.test/x", "hello") is False
