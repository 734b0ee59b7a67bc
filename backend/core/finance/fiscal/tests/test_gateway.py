from unittest import mock

from django.test import SimpleTestCase

from finance.errors import AuthoritySubmissionFailed
from finance.fiscal.adapters.base import AuthorityRejectionError, AuthorityTechnicalError
from finance.fiscal.adapters.mock import MockAuthorityAdapter
from finance.fiscal.gateway import MAX_BACKOFF_SECONDS, AuthorityGateway
from finance.fiscal.signing import HmacSha256Signer
from finance.fiscal.tests.documents import sample_document
from finance.fiscal.xml import serialize_document


def _gateway(adapter, **kwargs):
    sleep = mock.Mock()
    gateway = AuthorityGateway(adapter, HmacSha256Signer("secret"), sleep=sleep, **kwargs)
    return gateway, sleep


class AuthorityGatewayTests(SimpleTestCase):
    def test_accepted_submission_returns_signed_result(self):
        adapter = MockAuthorityAdapter()
        gateway, sleep = _gateway(adapter)

        result = gateway.submit(sample_document(), metadata={"invoice_id": 7})

        self.assertTrue(result.accepted)
        self.assertEqual(result.attempts, 1)
        self.assertEqual(result.signed_payload, serialize_document(sample_document()))
        self.assertEqual(adapter.submissions[0]["content_hash"], result.content_hash)
        self.assertEqual(adapter.submissions[0]["metadata"], {"invoice_id": 7})
        self.assertIsNotNone(result.authorized_at)
        self.assertEqual(result.to_dict()["algorithm"], "HMAC-SHA256")
        sleep.assert_not_called()

    def test_technical_errors_are_retried_with_exponential_backoff(self):
        adapter = MockAuthorityAdapter(fail_times=2, timeout_failures=True)
        gateway, sleep = _gateway(adapter, max_attempts=3, backoff_seconds=0.5)

        result = gateway.submit(sample_document())

        self.assertEqual(result.attempts, 3)
        self.assertEqual([c.args[0] for c in sleep.call_args_list], [0.5, 1.0])

    def test_exhausted_retries_are_transient(self):
        adapter = MockAuthorityAdapter(fail_times=5)
        gateway, sleep = _gateway(adapter, max_attempts=2)

        with self.assertRaises(AuthoritySubmissionFailed) as ctx:
            gateway.submit(sample_document())

        self.assertTrue(ctx.exception.transient)
        self.assertEqual(ctx.exception.attempts, 2)
        self.assertEqual(ctx.exception.http_status, 502)
        self.assertEqual(sleep.call_count, 1)

    def test_backoff_is_capped(self):
        gateway, _sleep = _gateway(MockAuthorityAdapter(), backoff_seconds=10)

        self.assertEqual(gateway.backoff_for(1), 10)
        self.assertEqual(gateway.backoff_for(3), 40)
        self.assertEqual(gateway.backoff_for(10), MAX_BACKOFF_SECONDS)

    def test_business_rejection_is_not_retried(self):
        adapter = MockAuthorityAdapter(response_code="400", description="NIT del receptor inválido")
        gateway, sleep = _gateway(adapter)

        with self.assertRaises(AuthoritySubmissionFailed) as ctx:
            gateway.submit(sample_document())

        self.assertFalse(ctx.exception.transient)
        self.assertEqual(ctx.exception.response_code, "400")
        self.assertEqual(ctx.exception.http_status, 422)
        self.assertEqual(len(adapter.submissions), 1)
        sleep.assert_not_called()

    def test_refused_request_is_not_retried(self):
        adapter = mock.Mock()
        adapter.submit_document.side_effect = AuthorityRejectionError("forbidden", code="403")
        gateway, _sleep = _gateway(adapter)

        with self.assertRaises(AuthoritySubmissionFailed) as ctx:
            gateway.submit(sample_document())

        self.assertEqual(ctx.exception.response_code, "403")
        self.assertEqual(adapter.submit_document.call_count, 1)

    def test_accepted_without_code_or_without_response_code_fails(self):
        gateway, _sleep = _gateway(MockAuthorityAdapter(omit_authorization_code=True))
        with self.assertRaises(AuthoritySubmissionFailed) as ctx:
            gateway.submit(sample_document())
        self.assertFalse(ctx.exception.transient)

        adapter = mock.Mock()
        adapter.submit_document.return_value = {"description": "??"}
        gateway, _sleep = _gateway(adapter)
        with self.assertRaises(AuthoritySubmissionFailed):
            gateway.submit(sample_document())

    def test_query_status(self):
        adapter = MockAuthorityAdapter()
        gateway, _sleep = _gateway(adapter)
        result = gateway.submit(sample_document())

        self.assertEqual(gateway.query_status(result.authorization_code)["status"], "AUTHORIZED")
        self.assertEqual(gateway.query_status("missing")["status"], "UNKNOWN")

        broken = mock.Mock()
        broken.check_status.side_effect = AuthorityTechnicalError("down")
        gateway, _sleep = _gateway(broken)
        with self.assertRaises(AuthoritySubmissionFailed) as ctx:
            gateway.query_status("A1")
        self.assertTrue(ctx.exception.transient)
