import dataclasses
import inspect
import pytest

from flexifunc import Kind, MalformedRequest, Mode, Parameter, RequestBuilder, TwinOptions, TypeRef


def test_mode_parsing():
    assert Mode.parse("sync") is Mode.SYNC
    assert Mode.parse(" ASYNC ") is Mode.ASYNC
    assert Mode.parse(Mode.ASYNC) is Mode.ASYNC
    assert Mode.SYNC.opposite is Mode.ASYNC

    with pytest.raises(MalformedRequest) as exc_info:
        Mode.parse("threaded")
    assert exc_info.value.field == "mode"
    assert "threaded" in str(exc_info.value)


def test_kind_parsing():
    assert Kind.parse("function") is Kind.NAMED_FUNCTION
    assert Kind.parse("named_function") is Kind.NAMED_FUNCTION
    assert Kind.parse("closure") is Kind.CLOSURE
    assert Kind.parse("block") is Kind.IMMEDIATE_BLOCK
    assert Kind.parse(Kind.CLOSURE) is Kind.CLOSURE

    with pytest.raises(MalformedRequest) as exc_info:
        Kind.parse("lambda")
    assert exc_info.value.field == "kind"


class TestTypeRef:
    def test_result_components(self):
        type_ref = TypeRef.parse("Result[Count, MyError]", "return_type")
        assert type_ref.is_result
        assert type_ref.success == "Count"
        assert type_ref.error == "MyError"

    def test_dotted_result_head(self):
        type_ref = TypeRef("flexifunc.Result[dict[str, int], errors.ParseError]")
        assert type_ref.is_result
        assert type_ref.success == "dict[str, int]"
        assert type_ref.error == "errors.ParseError"

    @pytest.mark.parametrize("text", ["int", "list[int]", "Result[int]", "Result", "Outcome[int, MyError]"])
    def test_not_result_bearing(self, text):
        type_ref = TypeRef(text)
        assert not type_ref.is_result
        assert type_ref.success is None
        assert type_ref.error is None

    def test_with_error_keeps_success_text(self):
        type_ref = TypeRef("Result[ list[ int ], MyError ]")
        replaced = type_ref.with_error("MyCustomError")
        assert replaced.text == "Result[list[ int ], MyCustomError]"
        assert replaced.success == type_ref.success
        assert type_ref.text == "Result[ list[ int ], MyError ]"

    def test_with_error_requires_result(self):
        with pytest.raises(MalformedRequest) as exc_info:
            TypeRef("int").with_error("MyError")
        assert exc_info.value.field == "return_type"

    @pytest.mark.parametrize("text", ["", "   ", "list[", "int int"])
    def test_invalid_type_text(self, text):
        with pytest.raises(MalformedRequest) as exc_info:
            TypeRef.parse(text, "parameters[0]")
        assert exc_info.value.field == "parameters[0]"


def _function_builder():
    return RequestBuilder().mode("sync").kind("function").name("compute").body("return 1")


class TestRequestBuilder:
    def test_build_named_function(self):
        request = (
            RequestBuilder()
            .mode("sync")
            .kind("function")
            .name("compute")
            .parameter("data", "bytes")
            .parameter("limit", "int", "10")
            .returns("Result[int, MyError]")
            .decorator("@functools.cache")
            .body("\n    return min(len(data), limit)\n\n")
            .build()
        )
        assert request.mode is Mode.SYNC
        assert request.kind is Kind.NAMED_FUNCTION
        assert request.name == "compute"
        assert request.parameters == (
            Parameter("data", TypeRef("bytes")),
            Parameter("limit", TypeRef("int"), "10"),
        )
        assert request.return_type == TypeRef("Result[int, MyError]")
        assert request.error_type is None
        assert request.decorators == ("functools.cache",)
        assert request.body == "return min(len(data), limit)"

    def test_body_is_dedented_only(self):
        body = """
            if x:
                return 'a  '   # keep this
            return  x
        """
        request = _function_builder().parameter("x", "str").body(body).build()
        assert request.body == "if x:\n    return 'a  '   # keep this\nreturn  x"

    def test_missing_fields(self):
        with pytest.raises(MalformedRequest) as exc_info:
            RequestBuilder().kind("function").name("f").body("pass").build()
        assert exc_info.value.field == "mode"

        with pytest.raises(MalformedRequest) as exc_info:
            RequestBuilder().mode("sync").name("f").body("pass").build()
        assert exc_info.value.field == "kind"

        with pytest.raises(MalformedRequest) as exc_info:
            RequestBuilder().mode("sync").kind("function").name("f").build()
        assert exc_info.value.field == "body"

    @pytest.mark.parametrize("kind", ["function", "closure"])
    def test_name_required(self, kind):
        with pytest.raises(MalformedRequest) as exc_info:
            RequestBuilder().mode("sync").kind(kind).body("pass").build()
        assert exc_info.value.field == "name"
        assert "required" in exc_info.value.reason

    def test_block_cannot_be_named(self):
        with pytest.raises(MalformedRequest) as exc_info:
            RequestBuilder().mode("sync").kind("block").name("greeting").body("return 'hi'").build()
        assert exc_info.value.field == "name"

    def test_block_takes_no_parameters(self):
        with pytest.raises(MalformedRequest) as exc_info:
            RequestBuilder().mode("async").kind("block").parameter("x", "int").body("return x").build()
        assert exc_info.value.field == "parameters"

    @pytest.mark.parametrize("name", ["class", "1abc", "with space", ""])
    def test_invalid_name(self, name):
        with pytest.raises(MalformedRequest) as exc_info:
            _function_builder().name(name).build()
        assert exc_info.value.field == "name"

    def test_error_type_requires_result_return(self):
        with pytest.raises(MalformedRequest) as exc_info:
            _function_builder().returns("int").error_type("MyError").build()
        assert exc_info.value.field == "error_type"

        with pytest.raises(MalformedRequest) as exc_info:
            _function_builder().error_type("MyError").build()
        assert exc_info.value.field == "error_type"

    def test_error_type_is_substituted_into_effective_return(self):
        request = _function_builder().returns("Result[int, ValueError]").error_type("MyError").build()
        assert request.return_type == TypeRef("Result[int, ValueError]")
        assert request.effective_return_type == TypeRef("Result[int, MyError]")

    def test_parameter_needs_type(self):
        with pytest.raises(MalformedRequest) as exc_info:
            _function_builder().parameter("data").build()
        assert exc_info.value.field == "parameters[0]"
        assert "no type" in exc_info.value.reason

    def test_receiver_may_be_untyped(self):
        request = _function_builder().parameter("self").parameter("x", "int").build()
        assert request.parameters[0] == Parameter("self")

        with pytest.raises(MalformedRequest) as exc_info:
            _function_builder().parameter("x", "int").parameter("self").build()
        assert exc_info.value.field == "parameters[1]"

    def test_duplicate_parameter(self):
        with pytest.raises(MalformedRequest) as exc_info:
            _function_builder().parameter("x", "int").parameter("x", "str").build()
        assert exc_info.value.field == "parameters[1]"
        assert "duplicate" in exc_info.value.reason

    def test_parameter_order(self):
        with pytest.raises(MalformedRequest) as exc_info:
            _function_builder().parameter("x", "int", "1").parameter("y", "int").build()
        assert exc_info.value.field == "parameters[1]"

        with pytest.raises(MalformedRequest):
            (
                _function_builder()
                .parameter("x", "int", kind=inspect.Parameter.KEYWORD_ONLY)
                .parameter("y", "int", kind=inspect.Parameter.POSITIONAL_OR_KEYWORD)
                .build()
            )

        # keyword-only parameters may go without defaults after defaulted positionals
        request = (
            _function_builder()
            .parameter("x", "int", "1")
            .parameter("y", "int", kind=inspect.Parameter.KEYWORD_ONLY)
            .build()
        )
        assert len(request.parameters) == 2

    def test_invalid_default(self):
        with pytest.raises(MalformedRequest) as exc_info:
            _function_builder().parameter("x", "int", "1 +").build()
        assert exc_info.value.field == "parameters[0]"

    def test_replace_revalidates(self):
        request = _function_builder().build()
        with pytest.raises(MalformedRequest) as exc_info:
            dataclasses.replace(request, name=None)
        assert exc_info.value.field == "name"

    def test_requests_are_immutable(self):
        request = _function_builder().build()
        with pytest.raises(dataclasses.FrozenInstanceError):
            request.name = "other"  # type: ignore


def test_twin_options():
    options = TwinOptions(error_type="MyCustomError")
    assert options.error_type == TypeRef("MyCustomError")
    assert options.async_name is None

    with pytest.raises(MalformedRequest) as exc_info:
        TwinOptions(async_name="not valid")
    assert exc_info.value.field == "async_name"

    with pytest.raises(MalformedRequest) as exc_info:
        TwinOptions(error_type="Result[")
    assert exc_info.value.field == "error_type"


def test_malformed_request_is_a_value_error():
    with pytest.raises(ValueError, match="^name: "):
        RequestBuilder().mode("sync").kind("closure").body("pass").build()


def test_body_dedent_skips_string_contents():
    body = '    doc = """\nkeep\n  this\n"""\n    return doc\n'
    request = _function_builder().body(body).build()
    assert request.body == 'doc = """\nkeep\n  this\n"""\nreturn doc'
