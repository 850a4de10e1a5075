"""Default keyword and merchant tables. `config.yaml` may override the categories."""

FALLBACK_CATEGORY = "miscellaneous"

DEFAULT_CATEGORY_KEYWORDS = {
    "groceries": {
        "english": ["apple", "banana", "bread", "milk", "cheese", "rice", "pasta", "vegetable", "fruit",
                    "meat", "fish", "chicken", "egg", "butter", "yogurt", "cereal", "coffee", "tea", "sugar",
                    "salt", "oil", "flour", "tomato", "onion", "potato", "carrot"],
        "localized": ["苹果", "香蕉", "面包", "牛奶", "芝士", "米饭", "意面", "蔬菜", "水果", "肉", "鱼", "鸡肉",
                      "鸡蛋", "黄油", "酸奶", "麦片", "咖啡", "茶", "糖", "盐", "油", "面粉", "番茄", "洋葱",
                      "土豆", "胡萝卜"],
    },
    "household": {
        "english": ["soap", "detergent", "towel", "tissue", "cleaner", "bleach", "trash", "bag", "battery",
                    "light", "bulb", "paper", "plate", "cup", "fork", "spoon", "knife"],
        "localized": ["肥皂", "洗衣粉", "毛巾", "纸巾", "清洁剂", "漂白水", "垃圾", "袋子", "电池", "灯", "灯泡",
                      "纸", "盘子", "杯子", "叉子", "勺子", "刀"],
    },
    "personal_care": {
        "english": ["shampoo", "conditioner", "toothpaste", "brush", "soap", "cream", "lotion", "makeup",
                    "perfume", "razor", "deodorant", "toilet", "paper"],
        "localized": ["洗发水", "护发素", "牙膏", "牙刷", "香皂", "面霜", "乳液", "化妆品", "香水", "剃须刀",
                      "除臭剂", "卫生纸"],
    },
    "electronics": {
        "english": ["phone", "laptop", "cable", "charger", "headphone", "speaker", "mouse", "keyboard",
                    "battery", "adapter", "usb", "hdmi"],
        "localized": ["手机", "电脑", "线", "充电器", "耳机", "音响", "鼠标", "键盘", "电池", "适配器", "usb", "hdmi"],
    },
    "clothing": {
        "english": ["shirt", "pants", "dress", "shoes", "socks", "jacket", "coat", "hat", "gloves", "scarf",
                    "underwear"],
        "localized": ["衬衫", "裤子", "裙子", "鞋子", "袜子", "夹克", "外套", "帽子", "手套", "围巾", "内衣"],
    },
    "transportation": {
        "english": ["gas", "petrol", "fuel", "parking", "toll", "taxi", "uber", "grab", "bus", "train", "subway"],
        "localized": ["汽油", "加油", "停车", "过路费", "出租车", "德士", "巴士", "地铁", "火车"],
    },
    "dining": {
        "english": ["restaurant", "food", "meal", "breakfast", "lunch", "dinner", "coffee", "tea", "drink",
                    "snack", "dessert"],
        "localized": ["餐厅", "食物", "餐", "早餐", "午餐", "晚餐", "咖啡", "茶", "饮料", "零食", "甜点"],
    },
    "entertainment": {
        "english": ["movie", "cinema", "ticket", "game", "book", "music", "concert", "show", "streaming",
                    "netflix"],
        "localized": ["电影", "影院", "票", "游戏", "书", "音乐", "演唱会", "表演", "流媒体"],
    },
    "healthcare": {
        "english": ["medicine", "drug", "pharmacy", "doctor", "hospital", "vitamin", "supplement", "mask",
                    "thermometer"],
        "localized": ["药", "药店", "医生", "医院", "维生素", "补品", "口罩", "温度计"],
    },
    "education": {
        "english": ["book", "course", "tuition", "school", "stationery", "pen", "pencil", "notebook", "paper"],
        "localized": ["书", "课程", "学费", "学校", "文具", "笔", "铅笔", "笔记本", "纸"],
    },
}

# Merchant name patterns, tried in order against every line (case-insensitive).
STORE_PATTERNS = {
    "english": [
        r"NTUC", r"FairPrice", r"Cold Storage", r"Sheng Siong", r"Giant", r"7-Eleven", r"Cheers",
        r"Watson", r"Guardian", r"IKEA", r"Uniqlo", r"H&M", r"Zara", r"McDonald", r"KFC",
        r"Starbucks", r"Subway", r"Pizza Hut",
    ],
    "localized": [
        r"职总平价", r"冷藏", r"昇菘", r"吉安", r"7-11", r"佳宁", r"屈臣氏", r"宜家", r"麦当劳",
        r"肯德基", r"星巴克", r"必胜客",
    ],
}

SUPPORTED_FORMATS = ("JPEG", "PNG", "WEBP")
MAX_IMAGE_BYTES = 10 * 1024 * 1024
