"""业务包集合：当前只提供知识库目录树业务包 ``wiki``。"""
