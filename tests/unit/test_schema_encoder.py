"""Tests for schema encoding and decoding."""

import pytest
from eth_abi import encode

from somnia_streams.core.errors import (
    ArityMismatch,
    DecodeError,
    InvalidValue,
    NameMismatch,
    TypeMismatch,
)
from somnia_streams.services.streams.encoder import SchemaEncoder
from somnia_streams.services.streams.types import DecodedItem, SchemaItem

OWNER = "0x1234567890123456789012345678901234567890"


class TestEncodeData:
    """Tests for SchemaEncoder.encode_data."""

    def test_encodes_primitives(self):
        """Test uint256 and bool are ABI encoded in order."""
        encoder = SchemaEncoder("uint256 id, bool flag")

        encoded = encoder.encode_data(
            [
                {"name": "id", "type": "uint256", "value": 42},
                {"name": "flag", "type": "bool", "value": True},
            ]
        )

        assert encoded == "0x" + "00" * 31 + "2a" + "00" * 31 + "01"

    def test_accepts_schema_items(self):
        """Test SchemaItem instances and mappings are interchangeable."""
        encoder = SchemaEncoder("string label")

        from_item = encoder.encode_data([SchemaItem("label", "string", "hi")])
        from_mapping = encoder.encode_data(
            [{"name": "label", "type": "string", "value": "hi"}]
        )

        assert from_item == from_mapping

    def test_bare_uint_type_is_accepted(self):
        """Test an item declared as uint matches a uint256 position."""
        encoder = SchemaEncoder("uint256 amount")

        encoded = encoder.encode_data([SchemaItem("amount", "uint", 1)])

        assert encoded == "0x" + "00" * 31 + "01"

    def test_alias_type_is_accepted(self):
        """Test an item declared as ipfsHash matches a bytes32 position."""
        encoder = SchemaEncoder("ipfsHash cid")
        value = "0x" + "ab" * 32

        encoded = encoder.encode_data([SchemaItem("cid", "ipfsHash", value)])

        assert encoded == value

    def test_arity_mismatch(self):
        """Test a missing item is reported with both counts."""
        encoder = SchemaEncoder("uint256 id, bool flag")

        with pytest.raises(ArityMismatch) as exc_info:
            encoder.encode_data([SchemaItem("id", "uint256", 1)])

        assert exc_info.value.expected == 2
        assert exc_info.value.actual == 1
        assert exc_info.value.step == "encode"

    def test_type_mismatch(self):
        """Test an item with the wrong type is rejected."""
        encoder = SchemaEncoder("uint256 id")

        with pytest.raises(TypeMismatch) as exc_info:
            encoder.encode_data([SchemaItem("id", "uint128", 1)])

        assert exc_info.value.index == 0

    def test_name_mismatch(self):
        """Test an item with the wrong name is rejected."""
        encoder = SchemaEncoder("uint256 id, bool flag")

        with pytest.raises(NameMismatch) as exc_info:
            encoder.encode_data(
                [SchemaItem("id", "uint256", 1), SchemaItem("enabled", "bool", True)]
            )

        assert exc_info.value.index == 1
        assert exc_info.value.expected == "flag"

    @pytest.mark.parametrize(
        "schema,type_,value",
        [
            ("uint8 v", "uint8", 256),
            ("uint8 v", "uint8", -1),
            ("int8 v", "int8", 128),
            ("bool v", "bool", 1),
            ("uint256 v", "uint256", True),
            ("address v", "address", "0x1234"),
            ("string v", "string", b"bytes"),
            ("bytes v", "bytes", "not hex"),
            ("bytes4 v", "bytes4", "0x0102030405"),
            ("uint8[2] v", "uint8[2]", [1, 2, 3]),
            ("uint8[] v", "uint8[]", "12"),
        ],
    )
    def test_invalid_values(self, schema, type_, value):
        """Test values that cannot be represented by their type."""
        encoder = SchemaEncoder(schema)

        with pytest.raises(InvalidValue):
            encoder.encode_data([SchemaItem("v", type_, value)])

    def test_bytes32_from_text(self):
        """Test plain text is packed left aligned into bytes32."""
        encoder = SchemaEncoder("bytes32 key")

        encoded = encoder.encode_data([SchemaItem("key", "bytes32", "hello")])

        assert encoded == "0x" + b"hello".hex() + "00" * 27

    def test_bytes32_text_is_truncated(self):
        """Test text longer than 32 bytes keeps its first 32 bytes."""
        encoder = SchemaEncoder("bytes32 key")

        encoded = encoder.encode_data([SchemaItem("key", "bytes32", "x" * 40)])

        assert encoded == "0x" + "78" * 32

    @pytest.mark.parametrize(
        "schema,type_,value",
        [
            ("bytes4 tag", "bytes4", "0x0102"),
            ("bytes4 tag", "bytes4", b"\x01"),
            ("bytes32 tag", "bytes32", "0x01"),
        ],
    )
    def test_short_fixed_bytes_are_rejected(self, schema, type_, value):
        """Test hex and bytes values must match the fixed size exactly."""
        encoder = SchemaEncoder(schema)

        with pytest.raises(InvalidValue):
            encoder.encode_data([SchemaItem("tag", type_, value)])

    def test_exact_fixed_bytes_round_trip(self):
        """Test a full-size hex value decodes to the same hex."""
        encoder = SchemaEncoder("bytes4 tag")

        encoded = encoder.encode_data([SchemaItem("tag", "bytes4", "0x01020304")])

        assert encoder.decode_data(encoded)[0].value == "0x01020304"

    def test_tuple_from_mapping(self):
        """Test tuples accept a mapping keyed by component name."""
        encoder = SchemaEncoder("(address owner, uint64 size) meta")

        encoded = encoder.encode_data(
            [
                SchemaItem(
                    "meta",
                    "(address owner, uint64 size)",
                    {"owner": OWNER, "size": 5},
                )
            ]
        )

        assert encoded == "0x" + encode(["(address,uint64)"], [(OWNER, 5)]).hex()

    def test_tuple_missing_field(self):
        """Test a mapping without every component is rejected."""
        encoder = SchemaEncoder("(address owner, uint64 size) meta")

        with pytest.raises(InvalidValue):
            encoder.encode_data([SchemaItem("meta", "(address,uint64)", {"owner": OWNER})])

    def test_address_is_checksummed(self):
        """Test lowercase addresses are accepted."""
        encoder = SchemaEncoder("address owner")

        encoded = encoder.encode_data([SchemaItem("owner", "address", OWNER.lower())])

        assert encoded == "0x" + "00" * 12 + OWNER[2:].lower()


class TestDecodeData:
    """Tests for SchemaEncoder.decode_data."""

    def test_round_trip(self):
        """Test decoding returns the encoded values with names and types."""
        encoder = SchemaEncoder("uint256 id, bool flag")
        encoded = encoder.encode_data(
            [SchemaItem("id", "uint256", 42), SchemaItem("flag", "bool", True)]
        )

        decoded = encoder.decode_data(encoded)

        assert decoded == [
            DecodedItem(name="id", type="uint256", value=42, signature="uint256 id"),
            DecodedItem(name="flag", type="bool", value=True, signature="bool flag"),
        ]

    def test_decode_bytes_input(self):
        """Test raw bytes payloads are accepted."""
        encoder = SchemaEncoder("string label")

        decoded = encoder.decode_data(encode(["string"], ["hello"]))

        assert decoded[0].value == "hello"

    def test_decoded_formats(self):
        """Test addresses are checksummed and bytes become hex."""
        encoder = SchemaEncoder("address owner, bytes32 cid, bytes blob")
        payload = encode(
            ["address", "bytes32", "bytes"], [OWNER, b"\x01" * 32, b"\x02\x03"]
        )

        owner, cid, blob = encoder.decode_data(payload)

        assert owner.value == OWNER
        assert cid.value == "0x" + "01" * 32
        assert blob.value == "0x0203"

    def test_tuple_array_decodes_to_nested_items(self):
        """Test arrays of tuples decode to lists of named items."""
        encoder = SchemaEncoder("(address owner, uint64 size)[] entries")
        payload = encode(["(address,uint64)[]"], [[(OWNER, 1), (OWNER, 2)]])

        (entries,) = encoder.decode_data(payload)

        assert entries.type == "(address,uint64)[]"
        assert len(entries.value) == 2
        first = entries.value[0]
        assert [item.name for item in first] == ["owner", "size"]
        assert first[1].value == 1
        assert entries.value[1][1].value == 2

    def test_decoded_tuple_can_be_re_encoded(self):
        """Test decoded tuple items are accepted as encode input."""
        encoder = SchemaEncoder("(address owner, uint64 size) meta")
        payload = encode(["(address,uint64)"], [(OWNER, 9)])

        decoded = encoder.decode_data(payload)

        assert encoder.encode_data(decoded) == "0x" + payload.hex()

    def test_primitive_arrays_are_plain_lists(self):
        """Test arrays of primitives decode to plain lists."""
        encoder = SchemaEncoder("uint8[3] rgb")

        (rgb,) = encoder.decode_data(encode(["uint8[3]"], [[1, 2, 3]]))

        assert rgb.value == [1, 2, 3]

    def test_malformed_payload(self):
        """Test a truncated payload raises DecodeError."""
        encoder = SchemaEncoder("uint256 a")

        with pytest.raises(DecodeError) as exc_info:
            encoder.decode_data("0x1234")

        assert exc_info.value.step == "decode"

    def test_non_hex_payload(self):
        """Test a non-hex string payload raises DecodeError."""
        encoder = SchemaEncoder("uint256 a")

        with pytest.raises(DecodeError):
            encoder.decode_data("hello")


class TestValidation:
    """Tests for the validity helpers."""

    def test_is_schema_valid(self):
        """Test schema validity without raising."""
        assert SchemaEncoder.is_schema_valid("uint256 a, string b") is True
        assert SchemaEncoder.is_schema_valid("uint256 a b") is False

    def test_is_encoded_data_valid(self):
        """Test payload validity without raising."""
        encoder = SchemaEncoder("uint256 a")

        assert encoder.is_encoded_data_valid("0x" + "00" * 32) is True
        assert encoder.is_encoded_data_valid("0x12") is False

    def test_schema_placeholders(self):
        """Test the placeholder items carry defaults."""
        encoder = SchemaEncoder("uint256 a, string b")

        assert [item.value for item in encoder.schema] == [0, ""]
        assert [item.signature for item in encoder.schema] == ["uint256 a", "string b"]
