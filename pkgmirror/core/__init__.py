"""核心模块: 数据模型、引用缓存、解析器、跟踪集、同步器"""
