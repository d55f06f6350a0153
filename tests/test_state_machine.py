from app.scanning.state import ScanRecordResult, ScanResult, TicketStateMachine


def test_classify_checks_existence_then_validity_then_usage(ticket_factory):
    assert TicketStateMachine.classify(None) is ScanResult.NOT_FOUND
    assert TicketStateMachine.classify(ticket_factory(is_valid=False, is_used=True)) is ScanResult.INVALID
    assert TicketStateMachine.classify(ticket_factory(is_valid=False)) is ScanResult.INVALID
    assert TicketStateMachine.classify(ticket_factory(is_used=True)) is ScanResult.ALREADY_USED
    assert TicketStateMachine.classify(ticket_factory()) is ScanResult.VALID_UNUSED


def test_only_used_tickets_can_be_reverted(ticket_factory):
    assert TicketStateMachine.can_revert(ticket_factory(is_used=True))
    assert not TicketStateMachine.can_revert(ticket_factory())
    assert not TicketStateMachine.can_revert(None)


def test_every_result_has_a_message_and_a_record_value():
    for result in ScanResult:
        assert TicketStateMachine.message_for(result)
        assert ScanRecordResult.from_scan_result(result).value == result.value
