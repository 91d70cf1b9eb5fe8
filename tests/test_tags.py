"""Tests for polyvalid.tags module."""

import logging
import weakref
from dataclasses import dataclass, field

import pytest

from polyvalid import (
    REDACTED,
    ConfigurationError,
    FieldKind,
    FieldLevel,
    TagRegistrationFrozenError,
    ValidationContext,
    ValidationErrors,
    Validator,
    compute_presence,
    rules,
)
from polyvalid.tags import BUILTIN_TAGS, default_message, redact


@dataclass
class User:
    email: str = rules("required,email", json="email", default="")
    age: int = rules("min=18", json="age", default=0)


@dataclass
class Profile:
    name: str = rules("required", json="name", default="")
    email: str = rules("required,email", json="email", default="")
    age: int = rules("required,gte=18", json="age", default=0)


@dataclass
class Address:
    street: str = rules("required", json="street", default="")
    city: str = rules("required,min=2", json="city", default="")


@dataclass
class Order:
    id: str = rules("required,uuid", json="id", default="")
    items: list[str] = rules("min=1,dive,slug", json="items", default_factory=list)
    address: Address = field(default_factory=Address, metadata={"json": "address"})
    notes: str = rules("omitempty,max=10", json="notes", default="")


@dataclass
class Signup:
    username: str = rules("required,username", json="username", default="")
    password: str = rules("required,strong_password", json="password", default="")


ORDER_ID = "0b5d7f8e-3c1a-4f2b-9d6e-1a2b3c4d5e6f"


def _errors(validator, value, **options) -> ValidationErrors:
    with pytest.raises(ValidationErrors) as exc_info:
        validator.validate(value, **options)
    return exc_info.value


class TestRules:
    """Test the rules() field helper."""

    def test_metadata(self):
        f = rules("required", json="name", default="")
        assert f.metadata["validate"] == "required"
        assert f.metadata["json"] == "name"
        assert f.default == ""

    def test_merges_existing_metadata(self):
        f = rules("required", metadata={"doc": "x"}, default=None)
        assert dict(f.metadata) == {"doc": "x", "validate": "required"}


class TestTagValidation:
    """Test full tag validation."""

    def test_valid_value_passes(self, validator):
        validator.validate(User(email="a@example.com", age=30))

    def test_two_failures(self, validator):
        errs = _errors(validator, User(email="invalid", age=15))

        assert len(errs) == 2
        assert [f.path for f in errs] == ["age", "email"]
        assert errs.get_field("email").code == "tag.email"
        assert errs.get_field("email").message == "must be a valid email address"
        assert errs.get_field("age").code == "tag.min"
        assert errs.get_field("age").message == "must be at least 18"
        assert errs.get_field("age").meta == {"tag": "min", "param": "18", "value": "15"}

    def test_first_failing_rule_only(self, validator):
        errs = _errors(validator, User(email="", age=20))
        assert len(errs) == 1
        assert errs.fields[0].code == "tag.required"
        assert errs.fields[0].message == "is required"

    def test_required_on_empty_collections(self, validator):
        @dataclass
        class Bag:
            items: list[int] = rules("required", json="items", default_factory=list)
            extra: dict = rules("required", json="extra", default_factory=dict)
            note: str | None = rules("required", json="note", default=None)
            count: int = rules("required", json="count", default=0)

        errs = _errors(validator, Bag())
        # Numbers always satisfy required
        assert [f.path for f in errs] == ["extra", "items", "note"]

    def test_string_length_message_mentions_characters(self, validator):
        @dataclass
        class Name:
            value: str = rules("min=3", json="value", default="")

        errs = _errors(validator, Name(value="ab"))
        assert errs.fields[0].message == "must be at least 3 characters"

    def test_collection_length_message(self, validator):
        @dataclass
        class Tags:
            tags: list[str] = rules("max=1", json="tags", default_factory=list)

        errs = _errors(validator, Tags(tags=["a", "b"]))
        assert errs.fields[0].message == "must contain at most 1 items"

    def test_nested_dataclass_paths(self, validator):
        order = Order(id=ORDER_ID, items=["ok"], address=Address(street="Main", city="X"))

        errs = _errors(validator, order)

        assert [(f.path, f.code) for f in errs] == [("address.city", "tag.min")]

    def test_dive_reports_element_paths(self, validator):
        order = Order(id=ORDER_ID, items=["good-slug", "Bad Slug", "ok"], address=Address("a", "bc"))

        errs = _errors(validator, order)

        assert [(f.path, f.code) for f in errs] == [("items.1", "tag.slug")]
        assert errs.fields[0].message == "must be lowercase letters, numbers, and hyphens"

    def test_rules_before_dive_apply_to_collection(self, validator):
        order = Order(id=ORDER_ID, items=[], address=Address("a", "bc"))
        errs = _errors(validator, order)
        assert [(f.path, f.code) for f in errs] == [("items", "tag.min")]

    def test_dive_over_dict_values(self, validator):
        @dataclass
        class Labels:
            labels: dict[str, str] = rules("dive,lowercase", json="labels", default_factory=dict)

        errs = _errors(validator, Labels(labels={"env": "prod", "team": "Core"}))
        assert [f.path for f in errs] == ["labels.team"]

    def test_dive_into_dataclass_elements(self, validator):
        @dataclass
        class Shipment:
            stops: list[Address] = rules("dive,required", json="stops", default_factory=list)

        errs = _errors(validator, Shipment(stops=[Address("a", "bc"), Address("", "bc")]))
        assert [f.path for f in errs] == ["stops.1.street"]

    def test_omitempty_skips_empty(self, validator):
        validator.validate(Order(id=ORDER_ID, items=["a"], address=Address("a", "bc"), notes=""))

        errs = _errors(
            validator,
            Order(id=ORDER_ID, items=["a"], address=Address("a", "bc"), notes="far too long note"),
        )
        assert [f.path for f in errs] == ["notes"]

    def test_or_alternatives(self, validator):
        @dataclass
        class Host:
            address: str = rules("ipv4|ipv6", json="address", default="")

        validator.validate(Host(address="10.0.0.1"))
        validator.validate(Host(address="::1"))

        errs = _errors(validator, Host(address="localhost"))
        assert errs.fields[0].code == "tag.ipv4|ipv6"
        assert errs.fields[0].message == "failed validation (ipv4|ipv6)"

    def test_json_name_fallback(self, validator):
        @dataclass
        class NoJson:
            display_name: str = rules("required", default="")
            hidden: str = rules("required", json="-", default="")

        errs = _errors(validator, NoJson())
        assert [f.path for f in errs] == ["display_name", "hidden"]

    def test_field_name_mapper(self):
        validator = Validator(field_name_mapper=lambda path: path.upper())
        errs = _errors(validator, User(email="bad", age=20))
        assert errs.fields[0].path == "EMAIL"

    def test_unknown_tag_reports_tag_error(self, validator):
        @dataclass
        class Typo:
            name: str = rules("requird", json="name", default="x")

        errs = _errors(validator, Typo())
        assert errs.fields[0].code == "tag_error"
        assert "requird" in errs.fields[0].message

    def test_oneof(self, validator):
        @dataclass
        class Color:
            color: str = rules("oneof=red green blue", json="color", default="red")

        validator.validate(Color())
        errs = _errors(validator, Color(color="pink"))
        assert errs.fields[0].message == "must be one of [red green blue]"

    def test_username_and_password(self, validator):
        validator.validate(Signup(username="alice_01", password="longenough"))

        errs = _errors(validator, Signup(username="a!", password="short"))
        assert [(f.path, f.code) for f in errs] == [
            ("password", "tag.strong_password"),
            ("username", "tag.username"),
        ]


class TestMessages:
    """Test message resolution priority."""

    def test_static_message_override(self):
        validator = Validator(messages={"email": "bad email"})
        errs = _errors(validator, User(email="nope", age=20))
        assert errs.fields[0].message == "bad email"

    def test_message_func(self):
        seen = []

        def min_message(param, kind):
            seen.append(kind)
            return f"needs {param}+"

        validator = Validator(message_funcs={"min": min_message})
        errs = _errors(validator, User(email="a@b.co", age=3))

        assert errs.fields[0].message == "needs 18+"
        assert seen == [FieldKind.INT]

    def test_static_wins_over_func(self):
        validator = Validator(
            messages={"min": "static"}, message_funcs={"min": lambda param, kind: "dynamic"}
        )
        errs = _errors(validator, User(email="a@b.co", age=3))
        assert errs.fields[0].message == "static"

    def test_per_call_messages(self, validator):
        errs = _errors(validator, User(email="a@b.co", age=3), messages={"min": "too young"})
        assert errs.fields[0].message == "too young"
        # The base configuration is untouched
        errs = _errors(validator, User(email="a@b.co", age=3))
        assert errs.fields[0].message == "must be at least 18"

    def test_default_messages(self):
        assert default_message("required", "", FieldKind.STRING) == "is required"
        assert default_message("max", "5", FieldKind.STRING) == "must be at most 5 characters"
        assert default_message("max", "5", FieldKind.INT) == "must be at most 5"
        assert default_message("contains", "@", FieldKind.STRING) == "must contain '@'"
        assert default_message("custom", "", FieldKind.OTHER) == "failed validation (custom)"


class TestRedaction:
    """Test redaction of sensitive values."""

    def test_redacted_meta_and_message(self):
        validator = Validator(
            redactor=lambda path: path == "password",
            messages={"strong_password": "password is too weak"},
        )

        errs = _errors(validator, Signup(username="alice", password="short"))

        field_error = errs.get_field("password")
        assert field_error.meta["value"] == REDACTED
        assert "short" not in field_error.message

    def test_redact_replaces_value_in_message(self):
        meta, message = redact({"tag": "eq", "value": "hunter2"}, "hunter2 is not allowed")
        assert meta == {"tag": "eq", "value": REDACTED}
        assert message == f"{REDACTED} is not allowed"

    def test_other_paths_not_redacted(self):
        validator = Validator(redactor=lambda path: path == "password")
        errs = _errors(validator, Signup(username="a!", password="longenough"))
        assert errs.get_field("username").meta["value"] == "a!"


class TestCustomTags:
    """Test custom tag registration and the freeze state machine."""

    def test_custom_tag_from_constructor(self):
        @dataclass
        class Even:
            n: int = rules("even", json="n", default=0)

        validator = Validator(custom_tags={"even": lambda fl: fl.value % 2 == 0})

        validator.validate(Even(n=4))
        errs = _errors(validator, Even(n=3))
        assert errs.fields[0].code == "tag.even"
        assert errs.fields[0].message == "failed validation (even)"

    def test_tag_receives_field_level(self):
        received: list[FieldLevel] = []

        def capture(fl: FieldLevel) -> bool:
            received.append(fl)
            return True

        @dataclass
        class Capture:
            value: str = rules("capture=xyz", json="value", default="v")

        validator = Validator()
        validator.register_tag("capture", capture)
        item = Capture()
        validator.validate(item)

        assert received[0].value == "v"
        assert received[0].param == "xyz"
        assert received[0].path == "value"
        assert received[0].parent is item
        assert received[0].kind is FieldKind.STRING

    def test_register_after_first_validation_is_frozen(self):
        validator = Validator()
        validator.register_tag("early", lambda fl: True)
        validator.validate(User(email="a@b.co", age=20))

        with pytest.raises(TagRegistrationFrozenError):
            validator.register_tag("late", lambda fl: True)

    def test_invalid_tag_names(self):
        with pytest.raises(ConfigurationError):
            Validator(custom_tags={"bad name": lambda fl: True})
        with pytest.raises(ConfigurationError):
            Validator().register_tag("a,b", lambda fl: True)
        with pytest.raises(ConfigurationError):
            Validator().register_tag("ok", "not callable")

    def test_custom_tag_overrides_builtin(self):
        validator = Validator(custom_tags={"email": lambda fl: fl.value.endswith("@corp.example")})
        validator.validate(User(email="me@corp.example", age=20))
        with pytest.raises(ValidationErrors):
            validator.validate(User(email="me@gmail.com", age=20))

    def test_malformed_param_fails_check_with_warning(self, validator, caplog):
        @dataclass
        class Malformed:
            name: str = rules("min=abc", json="name", default="value")

        caplog.set_level(logging.WARNING, logger="polyvalid.tags")

        errs = _errors(validator, Malformed())

        assert [f.code for f in errs] == ["tag.min"]
        records = [r for r in caplog.records if r.name == "polyvalid.tags"]
        assert [r.levelno for r in records] == [logging.WARNING]
        assert "Tag 'min' failed on 'name'" in records[0].getMessage()


class TestBuiltinTags:
    """Spot checks for built-in tag functions."""

    @pytest.mark.parametrize(
        "tag,value,param,expected",
        [
            ("email", "a@b.co", "", True),
            ("email", "a@b", "", False),
            ("url", "https://example.com/x", "", True),
            ("url", "example.com", "", False),
            ("uri", "urn:isbn:0451450523", "", True),
            ("len", "abc", "3", True),
            ("len", [1, 2], "3", False),
            ("gt", 5, "4", True),
            ("lte", 5.5, "5", False),
            ("eq", "x", "x", True),
            ("ne", 3, "3", False),
            ("alpha", "abc", "", True),
            ("alphanum", "ab1", "", True),
            ("numeric", "-1.5", "", True),
            ("number", "12", "", True),
            ("number", "-12", "", False),
            ("lowercase", "abc", "", True),
            ("uppercase", "aBC", "", False),
            ("contains", "hello", "ell", True),
            ("excludes", "hello", "x", True),
            ("startswith", "hello", "he", True),
            ("endswith", "hello", "lo", True),
            ("uuid", ORDER_ID, "", True),
            ("uuid", "not-a-uuid", "", False),
            ("ip", "192.168.0.1", "", True),
            ("ipv4", "::1", "", False),
            ("ipv6", "::1", "", True),
            ("boolean", "true", "", True),
            ("boolean", "yes", "", False),
            ("slug", "my-post-1", "", True),
            ("min", object(), "1", False),
        ],
    )
    def test_builtin(self, tag, value, param, expected):
        fl = FieldLevel(value=value, param=param)
        assert bool(BUILTIN_TAGS[tag](fl)) is expected


class TestPartialTags:
    """Test partial (PATCH) tag validation."""

    def test_absent_required_fields_are_ignored(self, validator):
        presence = compute_presence(b'{"email": "new@x.com"}')
        validator.validate_partial(Profile(email="new@x.com"), presence)

    def test_present_fields_are_checked(self, validator):
        presence = compute_presence(b'{"email": "broken", "age": 12}')

        with pytest.raises(ValidationErrors) as exc_info:
            validator.validate_partial(Profile(email="broken", age=12), presence)

        assert [f.path for f in exc_info.value] == ["age", "email"]

    def test_nested_leaf(self, validator):
        presence = compute_presence(b'{"address": {"city": "X"}}')
        order = Order(address=Address(street="", city="X"))

        with pytest.raises(ValidationErrors) as exc_info:
            validator.validate_partial(order, presence)

        assert [(f.path, f.code) for f in exc_info.value] == [("address.city", "tag.min")]

    def test_index_leaf_uses_rules_after_dive(self, validator):
        presence = compute_presence(b'{"items": ["ok", "Not OK"]}')
        order = Order(items=["ok", "Not OK"])

        with pytest.raises(ValidationErrors) as exc_info:
            validator.validate_partial(order, presence)

        assert [(f.path, f.code) for f in exc_info.value] == [("items.1", "tag.slug")]

    def test_unresolvable_paths_are_skipped(self, validator):
        presence = compute_presence(b'{"items": ["ok", "x", "y"], "ghost": 1}')
        validator.validate_partial(Order(items=["ok"]), presence)

    def test_weak_reference_is_followed(self, validator):
        @dataclass
        class Holder:
            target: object = field(default=None, metadata={"json": "target"})

        address = Address(street="", city="Y")
        holder = Holder(target=weakref.ref(address))
        presence = compute_presence(b'{"target": {"city": "Y"}}')

        with pytest.raises(ValidationErrors) as exc_info:
            validator.validate_partial(holder, presence)

        assert [f.path for f in exc_info.value] == ["target.city"]

    def test_max_fields_caps_checked_leaves(self, validator):
        presence = compute_presence(b'{"age": 1, "email": "bad", "name": ""}')

        with pytest.raises(ValidationErrors) as exc_info:
            validator.validate_partial(Profile(email="bad", age=1), presence, max_fields=1)

        # Leaves are sorted, so only "age" is checked
        assert [f.path for f in exc_info.value] == ["age"]

    def test_presence_from_raw_json_in_context(self, validator):
        ctx = ValidationContext(raw_json=b'{"email": "new@x.com"}')
        validator.validate(Profile(email="new@x.com"), ctx, partial=True)


class TestUnknownFields:
    """Test disallow_unknown_fields."""

    def test_unknown_field_reported(self, validator):
        presence = compute_presence(b'{"email": "a@b.co", "age": 20, "admin": true}')

        with pytest.raises(ValidationErrors) as exc_info:
            validator.validate(
                User(email="a@b.co", age=20), presence=presence, disallow_unknown_fields=True
            )

        errs = exc_info.value
        assert [(f.path, f.code) for f in errs] == [("admin", "unknown_field")]

    def test_nested_unknown_field(self, validator):
        presence = compute_presence(b'{"address": {"city": "Paris", "zip": "75000"}}')

        with pytest.raises(ValidationErrors) as exc_info:
            validator.validate_partial(
                Order(address=Address(city="Paris")), presence, disallow_unknown_fields=True
            )

        assert [(f.path, f.code) for f in exc_info.value] == [("address.zip", "unknown_field")]

    def test_without_presence_nothing_is_reported(self, validator):
        validator.validate(User(email="a@b.co", age=20), disallow_unknown_fields=True)


class TestTruncation:
    """Test max_errors in tag validation."""

    @dataclass
    class Wide:
        f0: str = rules("required", json="f0", default="")
        f1: str = rules("required", json="f1", default="")
        f2: str = rules("required", json="f2", default="")
        f3: str = rules("required", json="f3", default="")
        f4: str = rules("required", json="f4", default="")
        f5: str = rules("required", json="f5", default="")
        f6: str = rules("required", json="f6", default="")
        f7: str = rules("required", json="f7", default="")
        f8: str = rules("required", json="f8", default="")
        f9: str = rules("required", json="f9", default="")

    def test_max_errors_one(self):
        errs = _errors(Validator(max_errors=1), self.Wide())
        assert len(errs) == 1
        assert errs.truncated

    @pytest.mark.parametrize(
        "limit,expected_len,truncated",
        [(0, 10, False), (3, 3, True), (10, 10, False), (11, 10, False)],
    )
    def test_truncation_bound(self, limit, expected_len, truncated):
        errs = _errors(Validator(max_errors=limit), self.Wide())
        assert len(errs) == expected_len
        assert errs.truncated is truncated
