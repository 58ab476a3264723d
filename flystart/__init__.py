"""flystart - 构建前的依赖代码仓获取与更新"""

__version__ = "0.1.0"
