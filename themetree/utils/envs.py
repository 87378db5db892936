import os

# Whether model output may wrap its answer in thinking/answer tags (yes or no)
THINKING = os.environ.get("THINKING", "no") == "yes"
# If enabled, the enclosing tags around the answer
ANSWER_START_TAG = os.environ.get("ANSWER_START_TAG", "<answer>")
ANSWER_END_TAG = os.environ.get("ANSWER_END_TAG", "</answer>")

# Tokenizer used for prompt snippet truncation (tiktoken model name)
TOKENIZER_MODEL = os.getenv("TOKENIZER_MODEL", "gpt-4o")

# Prefix for configuration overrides read by AnalysisConfig
ENV_PREFIX = "THEMETREE_"
