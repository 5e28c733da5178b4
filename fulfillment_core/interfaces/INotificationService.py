from abc import ABC, abstractmethod

class INotificationService(ABC):
    @abstractmethod
    def send_pickup_code(self, phone: str, order_number: str, code: str, ttl_minutes: int) -> bool:
        pass

    @abstractmethod
    def notify_admin_settlement(self, summary: str) -> bool:
        pass
