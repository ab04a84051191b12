import os
import sys
import django
import random
from decimal import Decimal
from faker import Faker

# Add project root to Python path
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

# Set up Django environment
os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'marketplace_backend.settings')
django.setup()

from core.exceptions import MarketplaceException
from core.gateways import MockGateway
from core.models import Category, Transaction, User
from core.services import MessageService, NeedService, OfferService, PaymentService, ReviewService

fake = Faker('tr_TR')

CATEGORY_TREE = {
    ('Moving', 'Nakliyat'): [('Home Moving', 'Evden Eve'), ('Office Moving', 'Ofis Tasima')],
    ('Cleaning', 'Temizlik'): [('House Cleaning', 'Ev Temizligi'), ('Deep Cleaning', 'Detayli Temizlik')],
    ('Repairs', 'Tamir'): [('Plumbing', 'Tesisat'), ('Electrical', 'Elektrik')],
    ('Lessons', 'Dersler'): [],
}

# Rough bounding box around Istanbul
LAT_RANGE = (40.80, 41.20)
LON_RANGE = (28.60, 29.40)


def create_categories():
    print("Creating categories...")
    leaves = []
    for order, ((name, name_tr), children) in enumerate(CATEGORY_TREE.items()):
        parent = Category.objects.create(name=name, name_tr=name_tr, sort_order=order)
        if not children:
            leaves.append(parent)
        for child_order, (child_name, child_name_tr) in enumerate(children):
            leaves.append(Category.objects.create(
                name=child_name, name_tr=child_name_tr, parent=parent, sort_order=child_order
            ))
    print(f"Created {Category.objects.count()} categories.")
    return leaves


def create_users(num_buyers=10, num_providers=5):
    print(f"Creating {num_buyers} buyers and {num_providers} providers...")

    def make_user(user_type):
        email = fake.unique.email()
        return User.objects.create_user(
            username=email.split('@')[0],
            email=email,
            password='password123',
            first_name=fake.first_name(),
            last_name=fake.last_name(),
            phone_number=f"+90555{random.randint(1000000, 9999999)}",
            user_type=user_type,
        )

    buyers = [make_user('buyer') for _ in range(num_buyers)]
    providers = [make_user('provider') for _ in range(num_providers)]

    print(f"Created {len(buyers)} buyers and {len(providers)} providers.")
    return buyers, providers


def create_needs(buyers, categories):
    print("Creating needs...")
    service = NeedService()
    needs = []

    for buyer in buyers:
        # Each buyer posts 1-3 needs
        for _ in range(random.randint(1, 3)):
            category = random.choice(categories)
            min_budget = Decimal(random.randint(5, 100) * 100)
            data = {
                'category_id': category.id,
                'title': f"{category.name} - {fake.street_name()}",
                'description': fake.paragraph(),
                'min_budget': min_budget,
                'max_budget': min_budget + Decimal(random.randint(1, 20) * 100),
                'currency': 'TRY',
                'address': fake.address().replace('\n', ', ')[:500],
                'urgency': random.choice([1, 2, 3]),
            }
            if random.random() < 0.7:
                data['latitude'] = Decimal(str(round(random.uniform(*LAT_RANGE), 6)))
                data['longitude'] = Decimal(str(round(random.uniform(*LON_RANGE), 6)))
            needs.append(service.create_need(buyer, data))

    print(f"Created {len(needs)} needs.")
    return needs


def create_offers(needs, providers):
    print("Creating offers...")
    service = OfferService()
    offers = []

    for need in needs:
        # 0-3 providers bid on each need
        for provider in random.sample(providers, random.randint(0, min(3, len(providers)))):
            price = need.min_budget + (need.max_budget - need.min_budget) * Decimal(str(round(random.random(), 2)))
            offers.append(service.create_offer(provider, {
                'need_id': need.id,
                'price': price.quantize(Decimal('0.01')),
                'currency': need.currency,
                'description': fake.sentence(),
                'delivery_days': random.randint(1, 14),
            }))

    print(f"Created {len(offers)} offers.")
    return offers


def accept_offers(offers):
    print("Accepting offers...")
    service = OfferService()
    accepted = []
    seen_needs = set()

    for offer in offers:
        if offer.need_id in seen_needs or random.random() < 0.5:
            continue
        seen_needs.add(offer.need_id)
        accepted.append(service.accept_offer(offer.need.user, offer.id))

    print(f"Accepted {len(accepted)} offers.")
    return accepted


def create_payments(accepted_offers):
    print("Creating payments...")
    service = PaymentService(gateway=MockGateway())
    card = {
        'card_holder_name': 'Test Buyer',
        'card_number': '5528790000000008',
        'expire_month': '12',
        'expire_year': '2030',
        'cvc': '123',
    }
    transactions = []

    for offer in accepted_offers:
        buyer = offer.need.user
        try:
            result = service.initialize_payment(buyer, {'offer_id': offer.id, 'card': card})
        except MarketplaceException as e:
            print(f"  Skipping offer {offer.id}: {e.message}")
            continue

        txn = Transaction.objects.get(pk=result['transaction_id'])
        service.handle_callback(txn.conversation_id)

        outcome = random.choice(['hold', 'release', 'release', 'refund'])
        if outcome == 'release':
            service.release_payment(buyer, txn.id)
        elif outcome == 'refund':
            service.refund_payment(offer.provider, txn.id, reason='Provider could not make it')
        transactions.append(txn)

    print(f"Created {len(transactions)} transactions.")
    return transactions


def create_messages(offers):
    print("Creating messages...")
    service = MessageService()
    count = 0

    for offer in offers:
        if random.random() < 0.6:
            service.send_message(offer.provider, offer.id, fake.sentence())
            service.send_message(offer.need.user, offer.id, fake.sentence())
            count += 2

    print(f"Created {count} messages.")


def create_reviews(accepted_offers):
    print("Creating reviews...")
    service = ReviewService()
    count = 0

    for offer in accepted_offers:
        # 70% chance of leaving a review
        if random.random() < 0.7:
            service.create_review(offer.need.user, {
                'reviewee_id': offer.provider_id,
                'offer_id': offer.id,
                'rating': random.randint(3, 5),
                'comment': fake.paragraph(),
            })
            count += 1

    print(f"Created {count} reviews.")


def main():
    print("Starting database population...")

    categories = create_categories()
    buyers, providers = create_users(num_buyers=20, num_providers=10)
    needs = create_needs(buyers, categories)
    offers = create_offers(needs, providers)
    accepted = accept_offers(offers)
    create_payments(accepted)
    create_messages(offers)
    create_reviews(accepted)

    print("Database population completed successfully!")


if __name__ == '__main__':
    main()
