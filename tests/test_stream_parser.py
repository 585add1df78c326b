import pytest

from models.hook import Complexity, GenerationRecord, HookType
from models.stream import SessionConfig
from services.stream_parser import IncrementalStreamParser, StreamContractError

EXPECTED_CODE = "contract DynamicFeeHook is BaseHook {\n    function beforeSwap() external {}\n}"


def parse_chunks(chunks):
    parser = IncrementalStreamParser()
    for chunk in chunks:
        parser.ingest(chunk)
    return parser, parser.finalize()


def test_full_payload_in_one_fragment(hook_payload):
    parser, record = parse_chunks([hook_payload])

    assert isinstance(record, GenerationRecord)
    assert record.code == EXPECTED_CODE
    assert record.name == "Dynamic Fee Hook"
    assert record.description.startswith("Adjusts the pool fee")
    assert record.gas_estimate == 45000
    assert record.test_code == "contract DynamicFeeHookTest {}"
    assert record.examples == ["Deploy with a 0.3% base fee", "Attach to an ETH/USDC pool"]
    assert record.functionalities == ["Volatility tracking", "Fee override"]
    assert record.implementation_details[0].code_snippet == "uint256 vol;"
    assert record.implementation_details[1].code_snippet is None
    assert record.hook_type == HookType.BEFORE_SWAP
    assert record.complexity == Complexity.MEDIUM
    assert parser.reply == "Here is your dynamic fee hook."


def test_finalized_record_has_no_diagnostic_fields(hook_payload):
    parser, record = parse_chunks([hook_payload])

    assert not hasattr(record, "raw_content")
    assert "rawContent" not in record.to_wire()
    assert parser.raw_content == hook_payload


def test_every_two_way_split_matches_whole(hook_payload):
    _, expected = parse_chunks([hook_payload])

    for i in range(len(hook_payload) + 1):
        parser, record = parse_chunks([hook_payload[:i], hook_payload[i:]])
        assert record == expected, f"split at {i}"
        assert parser.reply == "Here is your dynamic fee hook."


def test_character_by_character_matches_whole(hook_payload):
    _, expected = parse_chunks([hook_payload])
    parser, record = parse_chunks(list(hook_payload))

    assert record == expected
    assert parser.reply == "Here is your dynamic fee hook."


def test_code_is_available_as_soon_as_region_closes():
    parser = IncrementalStreamParser()

    view = parser.ingest("<hookCode>contract A {")
    assert view.record.code is None
    assert not view.code_changed

    view = parser.ingest("}</hookCode><name>A")
    assert view.record.code == "contract A {}"
    assert view.code_changed
    assert "code" in view.discovered
    assert view.record.name is None


def test_consumed_regions_leave_buffer():
    parser = IncrementalStreamParser()
    parser.ingest("<name>Fee</name>prose<description>half")

    assert "<name>" not in parser.buffer
    assert parser.buffer == "prose<description>half"


def test_last_write_wins_for_repeated_tags():
    _, record = parse_chunks(["<name>First</name>", "<name>Second</name>"])
    assert record.name == "Second"


def test_repeated_examples_replace_rather_than_append():
    _, record = parse_chunks(
        [
            "<examples><example>a</example><example>b</example></examples>",
            "<examples><example>a</example><example>b</example><example>c</example></examples>",
        ]
    )
    assert record.examples == ["a", "b", "c"]


def test_unterminated_region_is_absent_at_finalize():
    _, record = parse_chunks(["<name>Fee Hook</name><description>never closed"])

    assert record.name == "Fee Hook"
    assert record.description is None


def test_stray_unclosed_tag_does_not_hide_later_tags():
    parser = IncrementalStreamParser()
    parser.ingest("Sure, I will fill the <description> tag below.\n")
    parser.ingest("<name>Fee Hook</name><hookCode>contract F {}</hookCode>")
    record = parser.finalize()

    assert record.name == "Fee Hook"
    assert record.code == "contract F {}"
    assert record.description is None


def test_malformed_gas_estimate_leaves_field_unset():
    parser, record = parse_chunks(["<gasEstimate>lots</gasEstimate><name>X</name>"])

    assert record.gas_estimate is None
    assert record.name == "X"
    assert parser.buffer == ""


def test_reply_regions_concatenate():
    parser = IncrementalStreamParser()

    first = parser.ingest("<reply>Hello.</reply>")
    second = parser.ingest("<reply>Bye.</reply>")

    assert first.reply_delta == "Hello."
    assert second.reply_delta == "Bye."
    assert parser.reply == "Hello.Bye."


def test_hook_type_defaults_to_custom_once_data_exists():
    _, record = parse_chunks(["<name>Plain Hook</name>"])
    assert record.hook_type == HookType.CUSTOM


def test_reply_only_content_has_no_hook_type():
    _, record = parse_chunks(["<reply>Which pool do you want to target?</reply>"])
    assert record.hook_type is None
    assert not record.has_data()


def test_custom_hook_type_is_replaced_by_later_phrase():
    parser = IncrementalStreamParser()

    assert parser.ingest("<name>Hook</name>").record.hook_type == HookType.CUSTOM
    view = parser.ingest("<description>Runs after initialize</description>")

    assert view.record.hook_type == HookType.AFTER_INITIALIZE
    assert "hook_type" in view.discovered


def test_configured_phrases_are_used():
    config = SessionConfig(hook_type_phrases=("after swap",))
    parser = IncrementalStreamParser(config)
    parser.ingest("<description>before swap then after swap</description>")

    assert parser.finalize().hook_type == HookType.AFTER_SWAP


def test_progress_is_clamped_and_monotonic():
    parser = IncrementalStreamParser()
    assert parser.progress == 5

    seen = []
    for _ in range(120):
        seen.append(parser.ingest("x" * 50).progress)

    assert seen == sorted(seen)
    assert seen[0] == 5
    assert seen[-1] == 95
    assert 5 < seen[40] < 95


def test_ingest_after_finalize_raises():
    parser = IncrementalStreamParser()
    parser.ingest("<name>A</name>")
    parser.finalize()

    with pytest.raises(StreamContractError):
        parser.ingest("<name>B</name>")


def test_finalize_twice_raises():
    parser = IncrementalStreamParser()
    parser.finalize()

    with pytest.raises(StreamContractError):
        parser.finalize()


def test_drain_is_idempotent():
    parser = IncrementalStreamParser()
    parser.ingest("<name>A</name><hookCode>open")

    assert parser.drain() == []
    assert parser.buffer == "<hookCode>open"
