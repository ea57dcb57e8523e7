"""Model loaders: turn a model identifier into a translator callable."""
