"""服务层: 容器与面向 CLI 的镜像服务"""
