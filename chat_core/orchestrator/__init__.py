"""系统提示词分类（prompt orchestrator）。"""
