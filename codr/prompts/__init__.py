from codr.prompts.system import build_system_prompt, load_system_prompt

__all__ = ["build_system_prompt", "load_system_prompt"]
