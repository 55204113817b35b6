"""命令行入口（终端聊天）。"""
