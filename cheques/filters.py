import django_filters
from django.db.models import Q

from cheques.models import Cheque


class ChequeFilter(django_filters.FilterSet):
    """Status and free-text filtering for cheque listings."""

    status = django_filters.ChoiceFilter(choices=Cheque.Status.choices)
    search = django_filters.CharFilter(method='filter_search')

    class Meta:
        model = Cheque
        fields = ['status', 'search']

    def filter_search(self, queryset, name, value):
        value = value.strip()
        if not value:
            return queryset
        return queryset.filter(
            Q(cheque_no__icontains=value)
            | Q(payer_name__icontains=value)
            | Q(payee_name__icontains=value)
            | Q(bank__icontains=value)
        )
