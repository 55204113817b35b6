"""技能注册表。

保存技能定义（名称、描述、输入 schema、handler），并在每次调用模型前
生成技能目录。目录必须每次重新生成，因为技能可以在两轮对话之间动态注册。
"""

from dataclasses import replace
from typing import Any, Dict, Iterator, List, Mapping, Optional

from skill_core.domain.exceptions import DuplicateSkillError, SkillNotFoundError, ValidationError
from skill_core.infrastructure.logging.logger import logger
from .definitions import PARAM_TYPES, SkillDefinition, SkillHandler, SkillParam, ToolDef


def build_params(inputs: Optional[Mapping[str, Any]]) -> Dict[str, SkillParam]:
    """把 {name: {description, required, type}} 形式的声明转换为 SkillParam。"""

    params: Dict[str, SkillParam] = {}
    for pname, spec in (inputs or {}).items():
        if isinstance(spec, SkillParam):
            params[pname] = spec
            continue
        spec = dict(spec or {})
        ptype = spec.get("type", "string")
        if ptype not in PARAM_TYPES:
            raise ValidationError(message=f"Unsupported parameter type {ptype!r} for {pname!r}")
        params[pname] = SkillParam(
            name=pname,
            description=str(spec.get("description") or ""),
            required=bool(spec.get("required", True)),
            type=ptype,
        )
    return params


class SkillRegistry:
    def __init__(self):
        self._skills: Dict[str, SkillDefinition] = {}

    def register(self, definition: SkillDefinition) -> None:
        if definition.name in self._skills:
            raise DuplicateSkillError(message=f"Skill {definition.name!r} is already registered", skill=definition.name)
        self._skills[definition.name] = definition
        logger.info("Registered skill", extra={"extra": {"skill": definition.name}})

    def resolve(self, name: str) -> SkillDefinition:
        try:
            return self._skills[name]
        except KeyError:
            raise SkillNotFoundError(message=f"Skill {name!r} is not registered", skill=name) from None

    def describe_all(self) -> List[Dict[str, Any]]:
        return [d.describe() for d in self._skills.values()]

    def tool_defs(self) -> List[ToolDef]:
        return [d.to_tool_def() for d in self._skills.values()]

    def annotate(self, name: str, inputs: Mapping[str, Any]) -> SkillDefinition:
        """补充或新增参数说明；这是注册后唯一允许的修改。"""

        definition = self.resolve(name)
        schema = dict(definition.input_schema)
        for pname, spec in inputs.items():
            spec = dict(spec or {})
            if pname in schema:
                if spec.get("type", schema[pname].type) not in PARAM_TYPES:
                    raise ValidationError(message=f"Unsupported parameter type {spec['type']!r} for {pname!r}")
                changes = {k: spec[k] for k in ("description", "required", "type") if k in spec}
                schema[pname] = replace(schema[pname], **changes)
            else:
                schema.update(build_params({pname: spec}))
        updated = replace(definition, input_schema=schema)
        self._skills[name] = updated
        return updated

    def __contains__(self, name: str) -> bool:
        return name in self._skills

    def __iter__(self) -> Iterator[SkillDefinition]:
        return iter(list(self._skills.values()))

    def __len__(self) -> int:
        return len(self._skills)


class SkillHandle:
    """add_skill 返回的句柄，用于在注册后补充输入说明。

    handle.in_({"book_name": {"description": "..."}})
    """

    def __init__(self, registry: SkillRegistry, name: str):
        self._registry = registry
        self.name = name

    @property
    def definition(self) -> SkillDefinition:
        return self._registry.resolve(self.name)

    def in_(self, inputs: Mapping[str, Any]) -> "SkillHandle":
        self._registry.annotate(self.name, inputs)
        return self


def make_skill(
    name: str,
    description: str,
    handler: SkillHandler,
    inputs: Optional[Mapping[str, Any]] = None,
) -> SkillDefinition:
    if not name or not name.strip():
        raise ValidationError(message="Skill name must not be empty")
    return SkillDefinition(name=name, description=description, handler=handler, input_schema=build_params(inputs))
