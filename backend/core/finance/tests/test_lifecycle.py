from django.test import SimpleTestCase

from finance.errors import AlreadyVoided, InvalidStateTransition
from finance.lifecycle import (
    TERMINAL_STATES,
    InvoiceStatus,
    allowed_transitions,
    is_valid_transition,
    validate_transition,
)


class InvoiceLifecycleTests(SimpleTestCase):
    def test_allowed_transitions(self):
        self.assertEqual(allowed_transitions(InvoiceStatus.DRAFT), {InvoiceStatus.ISSUED})
        self.assertEqual(
            allowed_transitions(InvoiceStatus.ISSUED),
            {InvoiceStatus.PAID, InvoiceStatus.VOID, InvoiceStatus.EXPIRED},
        )
        self.assertEqual(
            TERMINAL_STATES,
            {InvoiceStatus.PAID, InvoiceStatus.VOID, InvoiceStatus.EXPIRED},
        )

    def test_nothing_returns_to_draft(self):
        for state in InvoiceStatus.values:
            with self.subTest(state=state):
                self.assertFalse(is_valid_transition(state, InvoiceStatus.DRAFT))

    def test_draft_cannot_be_voided_or_paid(self):
        for target in (InvoiceStatus.VOID, InvoiceStatus.PAID, InvoiceStatus.EXPIRED):
            with self.subTest(target=target):
                with self.assertRaises(InvalidStateTransition) as ctx:
                    validate_transition(InvoiceStatus.DRAFT, target)
                self.assertEqual(ctx.exception.from_state, "draft")
                self.assertEqual(ctx.exception.to_state, target)

    def test_voiding_twice_is_a_distinct_error(self):
        validate_transition(InvoiceStatus.ISSUED, InvoiceStatus.VOID)
        with self.assertRaises(AlreadyVoided) as ctx:
            validate_transition(InvoiceStatus.VOID, InvoiceStatus.VOID)
        self.assertEqual(ctx.exception.kind, "already_voided")
        self.assertEqual(ctx.exception.http_status, 409)

    def test_unknown_state_has_no_transitions(self):
        self.assertEqual(allowed_transitions("archived"), frozenset())
        with self.assertRaises(InvalidStateTransition):
            validate_transition("archived", InvoiceStatus.ISSUED)
