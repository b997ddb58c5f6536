"""Chat popup core: streaming chat-completion client and its UI bridge."""
