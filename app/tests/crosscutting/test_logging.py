import json
import logging
import os
import tempfile
from unittest.mock import Mock

import pytest

from app.crosscutting.logging import (
    ROOT_LOGGER_NAME, CorrelationContext, SecretMasker, StructuredFormatter,
    log_error, log_extraction_complete, log_extraction_start,
    log_reconciliation_complete, log_with_fields, request_id_var, setup_logging,
    stage_var, video_id_var,
)


class TestSecretMasker:
    """Tests for secret masking functionality."""

    def setup_method(self):
        """Set up test fixtures."""
        self.masker = SecretMasker()

    def test_mask_api_token(self):
        """Test masking API tokens."""
        text = "API token: abc123def456ghi789"
        masked = self.masker.mask_secrets(text)
        assert masked == "API token: abc1**********i789"

    def test_mask_access_token(self):
        """Test masking Spotify bearer tokens passed as accessToken."""
        token = "BQABC123DEF456GHI789JKL012MNO345"
        masked = self.masker.mask_secrets(f"accessToken={token}")
        assert token not in masked
        assert masked.endswith("O345")

    def test_mask_client_secret(self):
        """Test masking client secrets."""
        text = "client_secret: my_super_secret_key_12345"
        masked = self.masker.mask_secrets(text)
        assert masked == "client_secret: my_s*****************2345"

    def test_mask_bearer_header(self):
        """Test masking bearer credentials in headers."""
        token = "eyJhbGciOiJIUzI1NiIsInR5cCI6IkpXVCJ9"
        masked = self.masker.mask_secrets(f"Authorization: Bearer {token}")
        assert token not in masked

    def test_plain_text_is_unchanged(self):
        text = "Found track 1: Night Drive by DJ Snake"
        assert self.masker.mask_secrets(text) == text

    def test_mask_dict(self):
        """Test masking secrets in nested dictionaries."""
        data = {
            'url': 'https://youtu.be/abc123',
            'headers': {'auth': 'token=abcdefghijklmnop'},
            'items': ['secret: qwertyuiopasdfgh', 3],
        }
        masked = self.masker.mask_dict(data)
        assert masked['url'] == 'https://youtu.be/abc123'
        assert 'abcdefghijklmnop' not in masked['headers']['auth']
        assert 'qwertyuiopasdfgh' not in masked['items'][0]
        assert masked['items'][1] == 3


class TestStructuredFormatter:
    """Tests for JSON log formatting."""

    def setup_method(self):
        """Set up test fixtures."""
        self.formatter = StructuredFormatter()

    def _record(self, message: str, **extra) -> logging.LogRecord:
        record = logging.LogRecord('mixlist.test', logging.INFO, __file__, 10, message, (), None)
        for key, value in extra.items():
            setattr(record, key, value)
        return record

    def test_basic_fields(self):
        entry = json.loads(self.formatter.format(self._record("Extraction started")))

        assert entry['level'] == 'INFO'
        assert entry['logger'] == 'mixlist.test'
        assert entry['message'] == 'Extraction started'
        assert entry['ts'].endswith('Z')
        assert 'requestId' not in entry

    def test_correlation_fields(self):
        with CorrelationContext(request_id='req1', video_id='abc123', stage='extract'):
            entry = json.loads(self.formatter.format(self._record("Fetching")))

        assert entry['requestId'] == 'req1'
        assert entry['videoId'] == 'abc123'
        assert entry['stage'] == 'extract'

    def test_fields_are_masked(self):
        record = self._record("Request", fields={'accessToken': 'token: abcdefghijklmnopqrstuvwxyz'})

        entry = json.loads(self.formatter.format(record))

        assert 'abcdefghijklmnopqrstuvwxyz' not in entry['fields']['accessToken']

    def test_non_ascii_is_preserved(self):
        entry = json.loads(self.formatter.format(self._record("Trying phrase 더보기")))
        assert entry['message'] == "Trying phrase 더보기"


class TestCorrelationContext:
    """Tests for correlation context management."""

    def test_context_is_restored(self):
        with CorrelationContext(request_id='outer', stage='extract'):
            with CorrelationContext(video_id='abc123', stage='fetch'):
                assert request_id_var.get() == 'outer'
                assert video_id_var.get() == 'abc123'
                assert stage_var.get() == 'fetch'
            assert video_id_var.get() is None
            assert stage_var.get() == 'extract'

        assert request_id_var.get() is None

    def test_context_is_restored_on_exception(self):
        with pytest.raises(RuntimeError):
            with CorrelationContext(request_id='req1'):
                raise RuntimeError("boom")

        assert request_id_var.get() is None


class TestSetupLogging:
    """Tests for logger configuration."""

    def setup_method(self):
        """Set up test fixtures."""
        self.temp_dir = tempfile.mkdtemp()
        self.log_file = os.path.join(self.temp_dir, 'mixlist.log')

    def teardown_method(self):
        """Clean up test fixtures."""
        for name in (ROOT_LOGGER_NAME, 'app'):
            logger = logging.getLogger(name)
            for handler in logger.handlers:
                handler.close()
            logger.handlers.clear()
            logger.propagate = True
        import shutil
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def test_setup_logging_routes_module_loggers(self):
        logger = setup_logging('DEBUG', self.log_file)

        assert logger.name == ROOT_LOGGER_NAME
        assert logger.level == logging.DEBUG
        assert len(logger.handlers) == 2
        assert all(isinstance(h.formatter, StructuredFormatter) for h in logger.handlers)

        app_logger = logging.getLogger('app')
        assert app_logger.handlers == logger.handlers
        assert app_logger.propagate is False

    def test_module_log_lands_in_file_as_json(self):
        setup_logging('INFO', self.log_file)

        logging.getLogger('app.application.extraction').info("Found track 1: B by A")
        for handler in logging.getLogger(ROOT_LOGGER_NAME).handlers:
            handler.flush()

        with open(self.log_file) as f:
            entry = json.loads(f.readline())
        assert entry['message'] == "Found track 1: B by A"
        assert entry['logger'] == 'app.application.extraction'


class TestLogHelpers:
    """Tests for the structured logging helpers."""

    def setup_method(self):
        """Set up test fixtures."""
        self.logger = Mock()
        self.logger.name = 'mixlist.test'
        self.records = []
        self.logger.makeRecord.side_effect = lambda *args: logging.LogRecord(
            args[0], args[1], args[2], args[3], args[4], args[5], args[6]
        )
        self.logger.handle.side_effect = self.records.append

    def test_log_with_fields(self):
        log_with_fields(self.logger, 'INFO', 'Hello', {'a': 1}, b=2)

        assert self.records[0].fields == {'a': 1, 'b': 2}
        assert self.records[0].levelno == logging.INFO

    def test_extraction_helpers(self):
        log_extraction_start(self.logger, 'req1', 'https://youtu.be/abc123', 'static')
        log_extraction_complete(self.logger, 'req1', 'abc123', track_count=5, log_count=20)

        assert self.records[0].fields == {'url': 'https://youtu.be/abc123', 'strategy': 'static'}
        assert self.records[1].fields == {'track_count': 5, 'log_count': 20}

    def test_reconciliation_and_error_helpers(self):
        log_reconciliation_complete(self.logger, 'queue', 3, 1)
        log_error(self.logger, 'Queue run failed', ValueError('bad'), mode='queue')

        assert self.records[0].fields == {'mode': 'queue', 'matched_count': 3, 'miss_count': 1}
        assert self.records[1].levelno == logging.ERROR
        assert self.records[1].fields == {
            'error_type': 'ValueError', 'error_message': 'bad', 'mode': 'queue'
        }

    def test_log_error_attaches_traceback(self):
        try:
            raise ValueError('bad')
        except ValueError as e:
            log_error(self.logger, 'Queue run failed', e)

        exc_type, exc_value, tb = self.records[0].exc_info
        assert exc_type is ValueError
        assert str(exc_value) == 'bad'
        assert tb is not None
        assert 'exc_info' not in self.records[0].fields

    def test_log_error_exception_rendered_by_formatter(self):
        try:
            raise RuntimeError('browser crashed')
        except RuntimeError as e:
            log_error(self.logger, 'Unexpected extraction failure', e)

        entry = json.loads(StructuredFormatter().format(self.records[0]))
        assert 'RuntimeError: browser crashed' in entry['exception']
        assert entry['fields']['error_type'] == 'RuntimeError'

    def test_log_with_fields_exc_info_true_uses_current_exception(self):
        try:
            raise KeyError('missing')
        except KeyError:
            log_with_fields(self.logger, 'ERROR', 'Lookup failed', exc_info=True)

        assert self.records[0].exc_info[0] is KeyError
        assert not hasattr(self.records[0], 'fields')
