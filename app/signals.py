from blinker import Namespace

_signals = Namespace()

# sender: the Flask app; kwargs: request (AdoptionRequest), action (str)
adoption_request_changed = _signals.signal("adoption-request-changed")


def log_adoption_request_change(sender, request, action, **extra):
    sender.logger.info(
        "adoption request %s %s (pet=%s requester=%s owner=%s)",
        request.id,
        action,
        request.pet_id,
        request.requester_id,
        request.owner_id,
    )
