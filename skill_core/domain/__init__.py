"""领域层模型与协议。

包含：
- models: 统一的 ChatMessage / ChatRequest / ChatStreamChunk 模型。
- conversation: 会话、历史 turn 以及 SessionStore 抽象。
- events: 对外暴露的流式事件。
- exceptions: 业务异常类型定义。
"""
