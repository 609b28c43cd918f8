"""
AI services package.

Every AI-backed endpoint is a FeatureDefinition run by the
AIOrchestrationService; provider clients, prompts, the answer cache and the
feature result sinks live alongside it.
"""
