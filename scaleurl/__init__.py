"""scaleurl: short-link redirect gateway with asynchronous visit accounting."""
