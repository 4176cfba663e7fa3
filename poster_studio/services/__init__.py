"""Generation pipeline services: assets, templates, prompts, provider, credits."""
