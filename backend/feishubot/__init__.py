"""FeishuGPT Bot - Feishu chat bot backed by generative AI."""

__version__ = "1.0.0"
