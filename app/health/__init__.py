"""商品健康分：转化、互动、完整度、搜索排名四项合成 0-100 分。"""
