import asyncio
import dataclasses
import inspect
import json
import logging
import time
from typing import Any, Dict, Optional

from skill_core.config.settings import settings
from skill_core.domain.exceptions import (
    BusinessError,
    InvalidArgumentsError,
    SkillExecutionError,
    SkillNotFoundError,
    SkillTimeoutError,
)
from skill_core.infrastructure.logging.logger import log_with_ctx
from .definitions import SkillDefinition, SkillParam, ToolCall, ToolCallResult
from .registry import SkillRegistry


_TYPE_CHECKS = {
    "string": lambda v: isinstance(v, str),
    "integer": lambda v: isinstance(v, int) and not isinstance(v, bool),
    "number": lambda v: isinstance(v, (int, float)) and not isinstance(v, bool),
    "boolean": lambda v: isinstance(v, bool),
    "array": lambda v: isinstance(v, (list, tuple)),
    "object": lambda v: isinstance(v, dict),
}


def validate_arguments(definition: SkillDefinition, arguments: Dict[str, Any]) -> None:
    """校验必填参数存在且类型与声明一致，失败抛 InvalidArgumentsError。"""

    if "_raw" in arguments and len(arguments) == 1:
        raise InvalidArgumentsError(message=f"Arguments for {definition.name!r} are not valid JSON: {arguments['_raw']}")
    problems = []
    for pname, param in definition.input_schema.items():
        value = arguments.get(pname)
        if value is None:
            if param.required:
                problems.append(f"missing required argument {pname!r}")
            continue
        if not _matches_type(param, value):
            problems.append(f"argument {pname!r} must be of type {param.type}")
    if problems:
        raise InvalidArgumentsError(
            message=f"Invalid arguments for {definition.name!r}: " + "; ".join(problems),
            skill=definition.name,
        )


def _matches_type(param: SkillParam, value: Any) -> bool:
    check = _TYPE_CHECKS.get(param.type)
    return check(value) if check else True


def format_output(output: Any) -> str:
    if output is None:
        return ""
    if isinstance(output, str):
        return output
    if dataclasses.is_dataclass(output) and not isinstance(output, type):
        output = dataclasses.asdict(output)
    return json.dumps(output, ensure_ascii=False, default=str)


class SkillDispatcher:
    """把模型的工具调用请求分发给对应技能。

    handler 的任何异常都在这里被转换成 ToolCallResult.error，
    只有取消（CancelledError）会继续向上传播。
    """

    def __init__(self, registry: SkillRegistry, timeout: Optional[float] = None):
        self._registry = registry
        self._timeout = timeout if timeout is not None else settings.skill_timeout

    async def invoke(self, name: str, arguments: Dict[str, Any]) -> Any:
        """直接调用技能并返回原始结果；失败时抛出对应的 BusinessError。"""

        definition = self._registry.resolve(name)
        validate_arguments(definition, arguments)
        try:
            return await asyncio.wait_for(self._invoke(definition, arguments), timeout=self._timeout)
        except asyncio.TimeoutError:
            raise SkillTimeoutError(message=f"Skill {name!r} timed out after {self._timeout}s", skill=name) from None
        except BusinessError:
            raise
        except Exception as e:
            raise SkillExecutionError(message=f"Skill {name!r} failed: {e}", skill=name) from e

    async def dispatch(self, call: ToolCall, log_ctx: Optional[Dict[str, Any]] = None) -> ToolCallResult:
        ctx = dict(log_ctx or {})
        ctx.update(tool_name=call.name, tool_call_id=call.id)
        start = time.monotonic()
        try:
            output = await self.invoke(call.name, call.arguments)
            try:
                content = format_output(output)
            except (TypeError, ValueError) as e:
                raise SkillExecutionError(
                    message=f"Skill {call.name!r} returned a result that cannot be serialised: {e}",
                    skill=call.name,
                ) from e
        except (SkillNotFoundError, InvalidArgumentsError) as e:
            log_with_ctx(logging.WARNING, "Tool call rejected", ctx, error=e.code, reason=e.message)
            return self._error_result(call, e)
        except SkillTimeoutError as e:
            log_with_ctx(logging.ERROR, "Tool execution timed out", ctx, timeout=self._timeout)
            return self._error_result(call, e)
        except BusinessError as e:
            log_with_ctx(logging.ERROR, "Tool execution failed", ctx, error=e.code, reason=e.message)
            return self._error_result(call, e)

        log_with_ctx(
            logging.INFO,
            "Tool execution finished",
            ctx,
            elapsed_seconds=round(time.monotonic() - start, 3),
            result_preview=content[:200],
        )
        return ToolCallResult(call_id=call.id, output=content)

    @staticmethod
    async def _invoke(definition: SkillDefinition, arguments: Dict[str, Any]) -> Any:
        handler = definition.handler
        if inspect.iscoroutinefunction(handler):
            return await handler(dict(arguments))
        # 同步 handler 放到线程里执行，避免阻塞事件循环，超时也能生效
        result = await asyncio.to_thread(handler, dict(arguments))
        if inspect.isawaitable(result):
            result = await result
        return result

    @staticmethod
    def _error_result(call: ToolCall, error: BusinessError) -> ToolCallResult:
        return ToolCallResult(call_id=call.id, output=f"Error: {error.message}", error=error.code)
