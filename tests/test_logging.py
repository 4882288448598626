import logging

from kozi.utils.logging import PIIMask, mask


def test_mask_hides_secrets():
    masked = mask('POST login {"email": "bot@kozi.rw", "password": "hunter2"} Authorization: Bearer abc.def')
    assert "hunter2" not in masked
    assert "abc.def" not in masked
    assert "kozi.rw" not in masked
    assert "bot@***" in masked


def test_filter_masks_args():
    record = logging.LogRecord("kozi", logging.INFO, __file__, 1, "login as %s", ("bot@kozi.rw",), None)
    assert PIIMask().filter(record)
    assert record.getMessage() == "login as bot@***"
