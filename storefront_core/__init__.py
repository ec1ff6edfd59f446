"""店铺平台核心层：公网唯一入口网关（商品 CRUD 由私网后端负责）。"""
