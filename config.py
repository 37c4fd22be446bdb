"""
Configuration module for the task scheduler.
Loads settings from environment variables or .env file.
任务调度器配置模块。
从环境变量或 .env 文件加载所有配置项。
"""

import os
from dotenv import load_dotenv

load_dotenv()  # 自动读取项目根目录的 .env 文件（若存在），优先级低于系统环境变量

# --- Scheduling ---
# --- 调度参数 ---
DEFAULT_CONCURRENCY = int(os.getenv("DEFAULT_CONCURRENCY", "2"))  # 未指定时每层最多并行执行的工作项数
SESSION_ID_PREFIX = os.getenv("SESSION_ID_PREFIX", "session")     # 会话 ID 前缀，如 session-1700000000000

# --- Simulated agents (CLI demo) ---
# --- 模拟 agent（命令行演示用）---
SIMULATION_TIME_SCALE = float(os.getenv("SIMULATION_TIME_SCALE", "0.01"))  # 每预估分钟实际休眠的秒数

# --- Logging ---
# --- 日志 ---
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()  # 非 verbose 模式下的根日志级别
