"""UGC product-review video generator: script, prompt and video via OpenAI + Kie.ai."""

__version__ = "0.1.0"
