import json
import logging

from codeguard.logging import UTCJsonFormatter, setup_logging


def test_setup_logging_installs_single_json_handler():
    setup_logging("debug")
    setup_logging("info")

    root = logging.getLogger()
    assert root.level == logging.INFO
    assert len(root.handlers) == 1
    assert isinstance(root.handlers[0].formatter, UTCJsonFormatter)
    assert logging.getLogger("redis").level == logging.WARNING


def test_extra_fields_are_rendered_as_json():
    formatter = UTCJsonFormatter("%(asctime)s %(levelname)s %(name)s %(message)s")
    record = logging.LogRecord(
        "codeguard.application.verification_service",
        logging.INFO,
        __file__,
        1,
        "verification code issued",
        None,
        None,
    )
    record.namespace = "SMS"
    payload = json.loads(formatter.format(record))
    assert payload["message"] == "verification code issued"
    assert payload["namespace"] == "SMS"
    assert payload["levelname"] == "INFO"
