"""领域层模型与协议。

包含：
- models: ChatMessage / StreamEvent / CodeBlock / SolutionCandidate 等统一模型。
- ports: 持久化回调、解决方案来源等外部协作者的抽象。
- exceptions: 业务异常类型定义。
"""
