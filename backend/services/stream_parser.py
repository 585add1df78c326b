"""
Incremental Stream Parser - Assemble a hook record from streamed fragments

Fragments are appended to a working buffer; completed tag regions are drained
from it and merged field by field into a WorkingRecord. Tags may be split
across any number of fragments.
"""

from __future__ import annotations

import json
from typing import Any

from models.hook import GenerationRecord, HookType, PartialRecordView, WorkingRecord, finalize_record
from models.stream import SessionConfig
from services import tag_extractor
from services.json_fallback import coerce_fields, looks_like_json, parse_json_content, unwrap_json_object
from services.tag_extractor import TagKind

# Fields set by an explicit value are not overridden by raw-text heuristics
_HEURISTIC_FIELDS = ("hook_type", "complexity")


class StreamContractError(RuntimeError):
    """Raised when a parser or session is driven out of order"""


class IncrementalStreamParser:
    """Single-use parser for one streaming session"""

    def __init__(self, config: SessionConfig | None = None):
        self.config = config or SessionConfig()
        self._buffer = ""
        self._record = WorkingRecord()
        self._tag_reply = ""
        self._json_reply = ""
        self._reply_delta = ""
        self._explicit: set[str] = set()
        self._finalized = False

    # ========== Accessors ==========

    @property
    def buffer(self) -> str:
        """Unconsumed text: incomplete regions and inert prose"""
        return self._buffer

    @property
    def raw_content(self) -> str:
        return self._record.raw_content

    @property
    def reply(self) -> str:
        return self._tag_reply or self._json_reply

    @property
    def json_reply(self) -> str:
        return self._json_reply

    @property
    def finalized(self) -> bool:
        return self._finalized

    @property
    def progress(self) -> int:
        """Coarse UI progress from the amount of text received"""
        cfg = self.config
        estimate = len(self._record.raw_content) / max(cfg.progress_chars_per_point, 1)
        return int(max(cfg.progress_floor, min(cfg.progress_ceiling, estimate)))

    def view(self, discovered: list[str] | None = None, code_changed: bool = False) -> PartialRecordView:
        return PartialRecordView(
            record=self._record.model_copy(deep=True),
            progress=self.progress,
            discovered=discovered or [],
            code_changed=code_changed,
            reply_delta=self._reply_delta,
        )

    # ========== Operations ==========

    def ingest(self, fragment: str) -> PartialRecordView:
        """Append a fragment and merge every region it completes"""
        if self._finalized:
            raise StreamContractError("ingest() called after finalize()")

        previous_code = self._record.code
        self._reply_delta = ""
        self._buffer += fragment
        self._record.raw_content += fragment

        if self.config.enable_json_fallback and looks_like_json(self._buffer):
            discovered = self._apply_json()
        else:
            discovered = self.drain()
        return self._finish_ingest(discovered, previous_code)

    def ingest_object(self, data: dict[str, Any]) -> PartialRecordView:
        """
        Merge one structured payload.

        Each object is decoded on its own and merged over the record, so a
        later object overrides the keys it carries. Only raw_content sees
        the serialized text; the tag buffer is left alone.
        """
        if self._finalized:
            raise StreamContractError("ingest_object() called after finalize()")

        previous_code = self._record.code
        self._reply_delta = ""
        self._record.raw_content += json.dumps(data)

        fields, reply = unwrap_json_object(data)
        return self._finish_ingest(self._merge_json(fields, reply), previous_code)

    def _finish_ingest(self, discovered: list[str], previous_code: str | None) -> PartialRecordView:
        discovered += self._apply_heuristics()
        self._record.reply_content = self.reply
        return self.view(
            discovered=list(dict.fromkeys(discovered)),
            code_changed=self._record.code != previous_code,
        )

    def drain(self) -> list[str]:
        """Consume all completed tag regions; returns the fields changed"""
        result = tag_extractor.drain(self._buffer)
        self._buffer = result.buffer

        discovered = []
        for extraction in result.extractions:
            if not extraction.accepted:
                continue
            descriptor = extraction.descriptor

            if descriptor.kind == TagKind.REPLY:
                self._tag_reply += extraction.value
                self._reply_delta += extraction.value
                continue

            if descriptor.kind == TagKind.FEATURES:
                names = [feature.name for feature in extraction.value]
                if self._merge("functionalities", names):
                    discovered.append("functionalities")

            if self._merge(descriptor.field, extraction.value):
                discovered.append(descriptor.field)
        return discovered

    def finalize(self) -> GenerationRecord:
        """Consumer-facing record with diagnostic fields stripped"""
        if self._finalized:
            raise StreamContractError("finalize() called more than once")
        self._finalized = True
        return finalize_record(self._record)

    # ========== Merging ==========

    def _merge(self, attr: str, value: Any) -> bool:
        """Last-write-wins assignment; True if the value changed"""
        if getattr(self._record, attr) == value:
            return False
        setattr(self._record, attr, value)
        return True

    def _apply_json(self) -> list[str]:
        parsed = parse_json_content(self._buffer)
        if parsed is None:
            return []
        return self._merge_json(*parsed)

    def _merge_json(self, data: dict[str, Any], reply: str | None) -> list[str]:
        if reply is not None:
            self._json_reply = reply

        fields = coerce_fields(data)
        self._explicit.update(attr for attr in _HEURISTIC_FIELDS if attr in fields)
        return [attr for attr, value in fields.items() if self._merge(attr, value)]

    def _apply_heuristics(self) -> list[str]:
        discovered = []
        raw = self._record.raw_content

        if "complexity" not in self._explicit:
            complexity = tag_extractor.detect_complexity(raw)
            if complexity is not None and self._merge("complexity", complexity):
                discovered.append("complexity")

        if "hook_type" not in self._explicit:
            hook_type = tag_extractor.detect_hook_type(raw, self.config.hook_type_phrases)
            if hook_type is None and self._record.has_data():
                hook_type = HookType.CUSTOM
            if hook_type is not None and self._merge("hook_type", hook_type):
                discovered.append("hook_type")
        return discovered
