"""统一业务异常模型。

所有跨模块抛出的业务级错误都继承自 BusinessError，
便于在 API 层、终端或事件流中做统一捕获与用户提示。

按来源大致分为三类：

- 技能侧（Registry / Dispatcher）：在 Dispatcher 边界被转换成文本结果，
  交给模型自行应对，不会中断会话。
- 模型侧（Driver / Provider）：终止当前 prompt，并以 error 事件结束。
- 存储侧（Session / Vector Store）：直接抛给 flush/load/insert 的调用方。
"""


class BusinessError(Exception):
    """业务异常基类。

    Attributes:
        code: 机器可读错误码（如 "SKILL_NOT_FOUND"）。
        message: 用户可读错误信息。
        http_status: 映射到 HTTP 时可用的状态码，默认 400。
        extra: 其他补充字段（例如 skill、session_id 等）。
    """

    code = "BUSINESS_ERROR"

    def __init__(self, code: str = "", message: str = "", http_status: int = 400, **extra):
        self.code = code or type(self).code
        self.message = message
        self.http_status = http_status
        self.extra = extra
        super().__init__(message)


# ---- 技能 ----

class SkillNotFoundError(BusinessError):
    """请求的技能未注册。"""

    code = "SKILL_NOT_FOUND"


class DuplicateSkillError(BusinessError):
    """同名技能重复注册。"""

    code = "DUPLICATE_SKILL"


class InvalidArgumentsError(BusinessError):
    """工具调用参数缺失或类型不符。"""

    code = "INVALID_ARGUMENTS"


class SkillTimeoutError(BusinessError):
    """技能执行超过 skill_timeout。"""

    code = "SKILL_TIMEOUT"


class SkillExecutionError(BusinessError):
    """技能 handler 自身抛出的异常。"""

    code = "SKILL_EXECUTION_ERROR"


# ---- 对话驱动 / 模型 ----

class ToolLoopExceededError(BusinessError):
    """单次 prompt 的工具调用轮数超过 max_tool_depth。"""

    code = "TOOL_LOOP_EXCEEDED"


class ModelBackendError(BusinessError):
    """模型后端不可用或返回了无法解析的内容。"""

    code = "MODEL_BACKEND_ERROR"


class NetworkError(ModelBackendError):
    """网络层错误，例如连接失败、超时等。"""

    code = "NETWORK_ERROR"


class ApiError(ModelBackendError):
    """第三方 API 返回非 2xx/429 错误时抛出。"""

    code = "API_ERROR"


class RateLimitError(ModelBackendError):
    """Provider 限流错误，由上层负责重试/退避策略。"""

    code = "RATE_LIMIT"


class MalformedResponseError(ModelBackendError):
    """流式响应格式异常。"""

    code = "MALFORMED_RESPONSE"


class ModelTimeoutError(ModelBackendError):
    """等待模型输出超过 model_timeout。"""

    code = "MODEL_TIMEOUT"


# ---- 存储 ----

class SessionPersistenceError(BusinessError):
    """会话历史写入或读取失败。"""

    code = "SESSION_PERSISTENCE_ERROR"


class VectorStoreError(BusinessError):
    """向量库写入/检索失败。"""

    code = "VECTOR_STORE_ERROR"


class DocumentParseError(BusinessError):
    """文档不存在或类型不受支持。"""

    code = "DOCUMENT_PARSE_ERROR"


class ValidationError(BusinessError):
    """参数或配置校验失败。"""

    code = "VALIDATION_ERROR"
