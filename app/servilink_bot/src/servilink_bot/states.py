from aiogram.fsm.state import State, StatesGroup


class ClientStates(StatesGroup):
    welcome = State()
    login_email = State()
    login_password = State()
    main_menu = State()
    request_category = State()
    request_description = State()
    request_cart = State()
    request_urgency = State()
    professional_found = State()
    dates_view = State()
    times_view = State()
    booking_confirm = State()
    booking_result = State()
    payment = State()
    payment_result = State()
    tracking = State()
    my_appointments = State()
    appointment_detail = State()
    rating = State()
    profile_help = State()


class ContractorStates(StatesGroup):
    main_menu = State()
    appointments = State()
    appointment_detail = State()
