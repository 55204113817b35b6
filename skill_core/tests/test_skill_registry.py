import pytest

from skill_core.domain.exceptions import DuplicateSkillError, SkillNotFoundError, ValidationError
from skill_core.skills.registry import SkillHandle, SkillRegistry, make_skill


def _noop(args):
    return None


def test_describe_all_keeps_registration_order():
    reg = SkillRegistry()
    for name in ("zeta", "alpha", "mid"):
        reg.register(make_skill(name, f"{name} skill", _noop))
    assert [d["name"] for d in reg.describe_all()] == ["zeta", "alpha", "mid"]
    assert [t.name for t in reg.tool_defs()] == ["zeta", "alpha", "mid"]


def test_duplicate_registration_leaves_registry_unchanged():
    reg = SkillRegistry()
    reg.register(make_skill("echo", "first", _noop))
    with pytest.raises(DuplicateSkillError):
        reg.register(make_skill("echo", "second", _noop))
    assert len(reg) == 1
    assert reg.resolve("echo").description == "first"


def test_resolve_unknown_skill():
    with pytest.raises(SkillNotFoundError) as exc:
        SkillRegistry().resolve("missing")
    assert exc.value.code == "SKILL_NOT_FOUND"


def test_input_schema_from_declaration():
    skill = make_skill(
        "search",
        "search things",
        _noop,
        inputs={"query": {"description": "what"}, "limit": {"type": "integer", "required": False}},
    )
    desc = skill.describe()
    assert desc["input_schema"]["query"] == {"description": "what", "required": True, "type": "string"}
    assert desc["input_schema"]["limit"]["required"] is False
    assert skill.input_schema["limit"].to_schema() == {"type": "integer"}


def test_unknown_param_type_rejected():
    with pytest.raises(ValidationError):
        make_skill("bad", "bad", _noop, inputs={"x": {"type": "date"}})


def test_empty_name_rejected():
    with pytest.raises(ValidationError):
        make_skill("  ", "nothing", _noop)


def test_handle_in_refines_inputs():
    reg = SkillRegistry()
    reg.register(make_skill("get_book_info", "book info", _noop, inputs={"book_name": {}}))
    handle = SkillHandle(reg, "get_book_info")
    returned = handle.in_({"book_name": {"description": "name of a book"}, "year": {"type": "integer", "required": False}})
    assert returned is handle
    schema = reg.resolve("get_book_info").input_schema
    assert schema["book_name"].description == "name of a book"
    assert schema["book_name"].required is True
    assert schema["year"].type == "integer"
    # 目录每次重新生成，能看到补充后的说明
    assert reg.describe_all()[0]["input_schema"]["book_name"]["description"] == "name of a book"


def test_handle_in_rejects_unknown_type():
    reg = SkillRegistry()
    reg.register(make_skill("s", "s", _noop, inputs={"a": {}}))
    with pytest.raises(ValidationError):
        SkillHandle(reg, "s").in_({"a": {"type": "blob"}})
    assert reg.resolve("s").input_schema["a"].type == "string"
