from app.models.book import Book
from app.models.coupon import Coupon, CouponType
from app.models.order import Order
from app.models.order_item import OrderItem
from app.models.order_event import OrderEvent
from app.models.user_cart import UserCart

# add ALL models here
